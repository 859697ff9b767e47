from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime
from streamcraft.database import Base


class PlatformCredential(Base):
    """
    RTMP ingest credentials per user and platform (e.g. "youtube").
    stream_key is stored encrypted, see streamcraft.utils.crypto.
    """
    __tablename__ = "platform_credentials"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_credential_user_provider"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    provider = Column(String, nullable=False)
    rtmp_url = Column(String, nullable=False)
    stream_key = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PlatformCredential(user_id='{self.user_id}', provider='{self.provider}')>"
