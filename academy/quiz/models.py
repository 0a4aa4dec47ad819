from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Any, List, Optional
from enum import Enum


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"


# ==================== QUIZ DEFINITION ====================

class Question(BaseModel):
    id: Optional[str] = None  # defaults to q<n>
    question: str = Field(..., min_length=1)
    type: QuestionType
    options: List[str] = []
    correct_answer: Any
    explanation: Optional[str] = None
    points: int = Field(1, ge=0)

class QuizCreate(BaseModel):
    course_id: str
    module_id: Optional[str] = None
    title: str = Field(..., min_length=1)
    description: str = ""
    instructions: str = ""
    questions: List[Question] = Field(..., min_length=1)
    duration: int = Field(30, ge=1)  # minutes
    passing_score: int = Field(70, ge=0, le=100)
    attempts: int = 3  # -1 = unlimited
    show_results: bool = True
    show_correct_answers: bool = True
    randomize_questions: bool = False
    is_published: bool = False

    @model_validator(mode="after")
    def check_attempts(self):
        if self.attempts != -1 and self.attempts < 1:
            raise ValueError("attempts must be -1 (unlimited) or at least 1")
        return self

class QuizUpdate(BaseModel):
    module_id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    instructions: Optional[str] = None
    questions: Optional[List[Question]] = Field(None, min_length=1)
    duration: Optional[int] = Field(None, ge=1)
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    attempts: Optional[int] = None
    show_results: Optional[bool] = None
    show_correct_answers: Optional[bool] = None
    randomize_questions: Optional[bool] = None

    @model_validator(mode="after")
    def check_attempts(self):
        if self.attempts is not None and self.attempts != -1 and self.attempts < 1:
            raise ValueError("attempts must be -1 (unlimited) or at least 1")
        return self

class PublishRequest(BaseModel):
    is_published: bool


# ==================== SUBMISSION ====================

class AnswerIn(BaseModel):
    question_id: str
    user_answer: Any = None
    answer: Any = None  # older clients send "answer"

class SubmitRequest(BaseModel):
    answers: List[AnswerIn] = []
    time_spent: int = Field(0, ge=0)  # seconds
    started_at: Optional[datetime] = None
