"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
Batch payloads are returned as populated documents (plain dicts), the same
shape the store keeps them in.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import Optional, List, Any, Dict
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    parent = "parent"
    admin = "admin"


# ============================================================
# ADMIN AUTH SCHEMAS
# ============================================================

class AdminRegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)

class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class AdminPublic(BaseModel):
    id: str
    name: str
    email: str
    role: str = UserRole.admin.value

class AdminLoginPublic(BaseModel):
    name: str
    email: str

class AdminRegisterResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    admin: AdminPublic

class AdminLoginResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    admin: AdminLoginPublic


# ============================================================
# USER AUTH SCHEMAS (students and parents)
# ============================================================

class UserRegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    parent_email: EmailStr = Field(..., alias="parentEmail")
    password: str = Field(..., min_length=6)

    @model_validator(mode="after")
    def emails_differ(self):
        if self.email == self.parent_email:
            raise ValueError("Student and parent email must be different")
        return self

class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class UserPublic(BaseModel):
    id: str
    name: str
    email: str
    parentEmail: Optional[str] = None
    role: str

class UserTokenResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    user: UserPublic

class ParentLoginResponse(UserTokenResponse):
    linkedStudents: List[Dict[str, Any]] = []

class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword", min_length=6)


# ============================================================
# BATCH SCHEMAS
# ============================================================

class BatchCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    class_label: str = Field(..., alias="class", min_length=1)
    teacher_id: str = Field(..., min_length=1)

class AddStudentsRequest(BaseModel):
    studentIds: Any = None

class JoinBatchRequest(BaseModel):
    batch_code: str = Field(..., min_length=1)

class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)

class BatchResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    batch: Dict[str, Any]

class BatchListResponse(BaseModel):
    success: bool = True
    batches: List[Dict[str, Any]]

class TeacherListResponse(BaseModel):
    success: bool = True
    teachers: List[Dict[str, Any]]
    count: int

class AnnouncementResponse(BaseModel):
    success: bool = True
    message: str
    announcement: Dict[str, Any]

class AnnouncementListResponse(BaseModel):
    success: bool = True
    announcements: List[Dict[str, Any]]

class StudentBatchesEntry(BaseModel):
    student: Dict[str, Any]
    batches: List[Dict[str, Any]]

class ParentStudentBatchesResponse(BaseModel):
    success: bool = True
    data: List[StudentBatchesEntry]


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    details: Optional[Any] = None
