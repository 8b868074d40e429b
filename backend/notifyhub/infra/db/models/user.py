"""User database model."""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime

from notifyhub.infra.db.base import Base
from notifyhub.domain.notifications.models import Recipient


class UserModel(Base):
    """User row (owned by the identity service; read here for contact details and reminder eligibility)."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")  # active | suspended | deleted
    mfa_enabled = Column(Boolean, default=False, nullable=False)
    phone_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_recipient(self) -> Recipient:
        """Convert to the recipient view used by the Hub."""
        return Recipient(user_id=self.id, email=self.email, first_name=self.first_name)
