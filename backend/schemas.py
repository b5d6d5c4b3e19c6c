"""Request / response models."""

from typing import List, Optional

from pydantic import BaseModel, field_validator

MEDIA_KINDS = ("video", "audio", "subs", "thumb")


class DownloadRequest(BaseModel):
    url: str
    cookies: Optional[str] = None
    type: str = "video"
    quality: Optional[str] = None
    sub_lang: Optional[str] = None

    @field_validator("url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        return v.strip()

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        v = (v or "").strip().lower()
        return v if v in MEDIA_KINDS else "video"

    @field_validator("cookies", "quality", "sub_lang")
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class MediaInfo(BaseModel):
    title: str = ""
    thumb_url: str = ""
    video_qualities: List[str] = []
    audio_qualities: List[str] = []
    sub_langs: List[str] = []
