from pydantic import BaseModel, Field, field_validator
from typing import Optional, List


class UserPut(BaseModel):
    """Схема профиля пользователя"""
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=5000)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Name cannot be empty')
        return v.strip()


class ExternalLink(BaseModel):
    """Внешняя ссылка идеи"""
    type: str = Field(..., min_length=1, max_length=50)
    url: str = Field(..., min_length=1, max_length=2000)


class IdeaCreate(BaseModel):
    """Схема для создания идеи"""
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(default="", max_length=1000000)
    goalIds: List[str] = Field(default_factory=list)
    cover: Optional[str] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError('Title cannot be empty')
        return v.strip()


class IdeaUpdate(BaseModel):
    """Схема для обновления идеи"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, max_length=1000000)
    goalIds: Optional[List[str]] = None
    cover: Optional[str] = None
    addExternalLink: Optional[ExternalLink] = None
    removeExternalLink: Optional[str] = None


class CommentCreate(BaseModel):
    """Схема для создания комментария"""
    ideaId: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=10000)


class VotePut(BaseModel):
    """Голос за комментарий"""
    commentId: str = Field(..., min_length=1)
    value: int

    @field_validator('value')
    @classmethod
    def validate_value(cls, v):
        if v not in (1, -1):
            raise ValueError('Value must be 1 or -1')
        return v


class CheerPut(BaseModel):
    """Поддержка идеи"""
    ideaId: str = Field(..., min_length=1)


class DiscussionCreate(BaseModel):
    """Схема для создания обсуждения"""
    toUserId: str = Field(..., min_length=1)
    firstMessageContent: str = Field(..., min_length=1, max_length=10000)


class InsertedResponse(BaseModel):
    """Ответ с id созданного документа"""
    insertedId: str


class UploadResponse(BaseModel):
    """Ответ с именем загруженного файла"""
    filename: str
