"""
Platform credentials router (RTMP URL + encrypted stream key per provider).
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel

from streamcraft.database import get_db
from streamcraft.services.credential_service import CredentialService
from streamcraft.utils.crypto import mask_secret

router = APIRouter(prefix="/credentials", tags=["Credentials"])


class CredentialRequest(BaseModel):
    rtmp_url: str
    stream_key: str


@router.put("/{user_id}/{provider}")
def save_credentials(
    user_id: str,
    provider: str,
    request: CredentialRequest,
    db: Session = Depends(get_db)
):
    """Create or replace credentials for a provider"""
    if not request.rtmp_url or not request.stream_key:
        raise HTTPException(400, "rtmp_url and stream_key are required")

    CredentialService(db).save(user_id, provider, request.rtmp_url, request.stream_key)
    return {
        "success": True,
        "data": {
            "provider": provider,
            "rtmp_url": request.rtmp_url,
            "stream_key": mask_secret(request.stream_key)
        }
    }


@router.get("/{user_id}/{provider}")
def get_credentials(user_id: str, provider: str, db: Session = Depends(get_db)):
    credentials = CredentialService(db).get_masked(user_id, provider)
    if not credentials:
        raise HTTPException(404, f"No {provider} credentials for user {user_id}")

    return {"success": True, "data": credentials}


@router.delete("/{user_id}/{provider}")
def delete_credentials(user_id: str, provider: str, db: Session = Depends(get_db)):
    if not CredentialService(db).delete(user_id, provider):
        raise HTTPException(404, f"No {provider} credentials for user {user_id}")

    return {"success": True, "message": "Credentials deleted"}
