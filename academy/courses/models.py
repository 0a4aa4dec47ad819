from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from enum import Enum

# ==================== ENUMS ====================

class CourseLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

class VideoProvider(str, Enum):
    YOUTUBE = "youtube"
    DROPBOX = "dropbox"
    NONE = "none"

# ==================== CURRICULUM MODELS ====================

class LessonResource(BaseModel):
    title: str
    url: str
    type: str = "other"  # pdf, code, document, other

class Lesson(BaseModel):
    id: str
    title: str
    description: str = ""
    video_url: Optional[str] = None
    video_provider: VideoProvider = VideoProvider.NONE
    video_id: Optional[str] = None
    duration: Optional[str] = None  # "15:30"
    duration_seconds: Optional[int] = None
    is_free: bool = False
    order: int = 0
    resources: List[LessonResource] = []

class Topic(BaseModel):
    id: str
    title: str
    lessons: List[Lesson] = []

# ==================== COURSE MODEL ====================

class Course(BaseModel):
    course_id: str
    title: str
    description: str = ""
    short_description: str = ""
    category: str = ""
    level: CourseLevel = CourseLevel.BEGINNER
    language: str = "English"
    thumbnail: str = ""
    instructor: str = ""
    price: float = Field(0, ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    is_free: bool = False
    has_discount: bool = False
    curriculum: List[Topic] = []

    @model_validator(mode="after")
    def check_lesson_ids_unique(self):
        seen = set()
        for topic in self.curriculum:
            for lesson in topic.lessons:
                if lesson.id in seen:
                    raise ValueError(f"Duplicate lesson id: {lesson.id}")
                seen.add(lesson.id)
        return self
