"""
Service untuk RTMP credentials per platform.
"""
import logging
from datetime import datetime
from typing import Dict, Optional
from sqlalchemy.orm import Session

from streamcraft.models.credential import PlatformCredential
from streamcraft.utils.crypto import encrypt_value, decrypt_value, mask_secret

logger = logging.getLogger(__name__)


class CredentialService:
    """Service untuk menyimpan dan membaca platform credentials"""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, user_id: str, provider: str) -> Optional[PlatformCredential]:
        return self.db.query(PlatformCredential).filter(
            PlatformCredential.user_id == user_id,
            PlatformCredential.provider == provider
        ).first()

    def save(self, user_id: str, provider: str, rtmp_url: str, stream_key: str) -> PlatformCredential:
        """
        Create or replace credentials for a user/platform pair.

        Args:
            user_id: Owning user
            provider: Platform name (e.g. "youtube")
            rtmp_url: RTMP ingest URL
            stream_key: Stream key (stored encrypted)

        Returns:
            PlatformCredential object
        """
        credential = self._find(user_id, provider)

        if credential is None:
            credential = PlatformCredential(user_id=user_id, provider=provider)
            self.db.add(credential)

        credential.rtmp_url = rtmp_url
        credential.stream_key = encrypt_value(stream_key)
        credential.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(credential)

        logger.info(f"Saved {provider} credentials for user {user_id}")
        return credential

    def get(self, user_id: str, provider: str) -> Optional[Dict]:
        """
        Get decrypted credentials.

        Returns:
            {'rtmp_url', 'stream_key'} atau None
        """
        credential = self._find(user_id, provider)
        if not credential:
            return None

        return {
            'provider': credential.provider,
            'rtmp_url': credential.rtmp_url,
            'stream_key': decrypt_value(credential.stream_key)
        }

    def get_masked(self, user_id: str, provider: str) -> Optional[Dict]:
        data = self.get(user_id, provider)
        if data:
            data['stream_key'] = mask_secret(data['stream_key'])
        return data

    def delete(self, user_id: str, provider: str) -> bool:
        credential = self._find(user_id, provider)
        if not credential:
            return False

        self.db.delete(credential)
        self.db.commit()
        logger.info(f"Deleted {provider} credentials for user {user_id}")
        return True
