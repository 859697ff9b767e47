"""
Video library router: upload, list, delete.
"""
import os
import uuid
import shutil
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from streamcraft.config import VIDEO_STORAGE_PATH
from streamcraft.database import SessionLocal, get_db
from streamcraft.services.video_service import VideoService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["Videos"])

ALLOWED_EXTENSIONS = {'.mp4', '.mkv', '.mov', '.avi', '.flv', '.webm'}


def process_video_task(video_id: int):
    """Background task: probe duration + thumbnail dengan session sendiri"""
    db = SessionLocal()
    try:
        VideoService(db).process_video(video_id)
    finally:
        db.close()


@router.post("/upload")
async def upload_video(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    user_id: str = Form(...),
    title: str = Form(""),
    description: str = Form(""),
    db: Session = Depends(get_db)
):
    """
    Upload video file and register it in the database.
    Metadata is filled in by a background task.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="Empty filename")

    ext = os.path.splitext(file.filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported video format: {ext}")

    os.makedirs(VIDEO_STORAGE_PATH, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}{ext}"
    file_path = os.path.join(VIDEO_STORAGE_PATH, stored_name).replace("\\", "/")

    # Save file to disk
    try:
        with open(file_path, "wb") as f:
            shutil.copyfileobj(file.file, f)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save file: {str(e)}")

    video = VideoService(db).register_upload(
        user_id=user_id,
        title=title or os.path.splitext(file.filename)[0],
        description=description,
        filename=stored_name,
        filepath=file_path,
        filesize=os.path.getsize(file_path),
        mime_type=file.content_type or "video/mp4"
    )

    background_tasks.add_task(process_video_task, video.id)

    return {
        "success": True,
        "message": "Video uploaded successfully",
        "data": video.to_dict()
    }


@router.get("/user/{user_id}")
def list_user_videos(user_id: str, db: Session = Depends(get_db)):
    videos = VideoService(db).list_for_user(user_id)
    return {"success": True, "data": [video.to_dict() for video in videos]}


@router.delete("/{video_id}")
def delete_video(video_id: int, db: Session = Depends(get_db)):
    """Delete video row, file and thumbnail. Stream associations cascade."""
    if not VideoService(db).delete_video(video_id):
        raise HTTPException(404, f"Video {video_id} not found")

    return {"success": True, "message": "Video deleted successfully"}
