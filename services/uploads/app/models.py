# Pydantic data models (schemas) for the uploads service.
#
# Attribute names are snake_case; aliases carry the camelCase names used both
# on the wire and in the persisted Mongo documents.

from typing import Optional
from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Records (one Mongo document each)
# -----------------------------------------------------------------------------

class QuestionRecord(BaseModel):
    """
    One uploaded exam paper. Stored in the "questions" collection.
    """
    id: Optional[str] = Field(None, alias="_id") # Store-assigned id, None until inserted
    course_name: str = Field(..., alias="courseName") # Free text, matched case-insensitively
    year: int
    term: str # Semester label, e.g. "Fall"
    semester: int
    pdf_url: str = Field(..., alias="pdfUrl") # Absolute URL under /uploads/

    model_config = {"populate_by_name": True}


class NoteRecord(BaseModel):
    """
    One uploaded set of course notes. Stored in the "notes" collection.
    """
    id: Optional[str] = Field(None, alias="_id")
    course_name: str = Field(..., alias="courseName")
    term: str
    semester: int
    pdf_url: str = Field(..., alias="pdfUrl")

    model_config = {"populate_by_name": True}

# -----------------------------------------------------------------------------
# REST response models
# -----------------------------------------------------------------------------

class ErrorResponse(BaseModel):
    """
    Uniform error body, e.g. {"error": "Failed to upload file"}.
    """
    error: str


class HealthResponse(BaseModel):
    status: str
    service: str
