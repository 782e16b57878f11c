from typing import Optional

from pydantic import BaseModel, field_validator


class CoverLetterContent(BaseModel):
    subject: Optional[str] = None
    body: str

    @field_validator("subject", mode="before")
    @classmethod
    def _subject_not_null(cls, value):
        # omitted is fine, an explicit null is not
        if value is None:
            raise ValueError("subject must be a string when present")
        return value
