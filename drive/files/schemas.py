from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_serializer
from datetime import datetime
from typing import List

class FileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    filename: str
    original_name: str
    file_size: int
    mime_type: str
    owner_id: str
    created_at: datetime
    modified_at: datetime
    uploaded_at: datetime
    is_deleted: bool

    # clients expect the 0/1 flag
    @field_serializer("is_deleted")
    def _flag(self, v: bool) -> int:
        return int(v)

class FileRenameIn(BaseModel):
    newName: StrictStr = Field(min_length=1, max_length=255)

class FileEnvelope(BaseModel):
    file: FileOut

class FileMessageOut(BaseModel):
    message: str
    file: FileOut

class FileList(BaseModel):
    files: List[FileOut]

class SearchOut(BaseModel):
    files: List[FileOut]
    query: str

class UsageOut(BaseModel):
    files: int
    bytes: int
