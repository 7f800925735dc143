"""
schemas/school.py

- 원격 백엔드에서 내려받는 학사 기본 엔티티 (학생, 반, 교사, 과목 배정 등)
- 이 서비스는 읽기만 하므로 필드는 성적 처리에 필요한 것만 둔다.
"""

from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict


def _title_status(v):
    # 백엔드는 'active' / 'Active' 를 섞어서 내려준다 → 'Active' 로 통일
    if isinstance(v, str) and v:
        return v.strip().capitalize()
    return v


Status = Annotated[str, BeforeValidator(_title_status)]


class Student(BaseModel):
    id: int                                  # 학생 ID
    first_name: str = ""
    last_name: str = ""
    admission_number: str = ""               # 학번 (CSV 가져오기 매칭 키)
    class_id: Optional[int] = None           # 소속 반
    parent_id: Optional[int] = None
    status: Status = "Active"                # Active / Inactive / Graduated

    model_config = ConfigDict(extra="ignore")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status == "Active"


class SchoolClass(BaseModel):
    id: int
    name: str
    level: Optional[str] = None
    class_teacher_id: Optional[int] = None   # 담임 교사 ID
    status: Status = "Active"
    students: List[Student] = []             # with-students 조회 시에만 채워짐

    model_config = ConfigDict(extra="ignore")


class Teacher(BaseModel):
    id: int
    first_name: str = ""
    last_name: str = ""
    is_class_teacher: bool = False
    class_teacher_id: Optional[int] = None   # 담임을 맡은 반 ID
    status: Status = "Active"

    model_config = ConfigDict(extra="ignore")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class SubjectAssignment(BaseModel):
    """교사-과목-반-학기 배정. 교사가 성적을 입력할 수 있는 범위를 정한다."""
    id: int
    subject_id: int
    subject_name: str = ""
    class_id: int
    class_name: str = ""
    teacher_id: int
    teacher_name: str = ""
    term: str = ""
    academic_year: str = ""

    model_config = ConfigDict(extra="ignore")


class ClassSubjectRegistration(BaseModel):
    """반에 학기별로 등록된 과목 목록"""
    id: int
    class_id: int
    subject_id: int
    subject_name: str = ""
    term: str = ""
    academic_year: str = ""
    is_core: bool = True
    status: Status = "Active"

    model_config = ConfigDict(extra="ignore")


class AcademicSession(BaseModel):
    id: int
    name: str                                # 예: "2024/2025"
    is_active: bool = False

    model_config = ConfigDict(extra="ignore")


class AcademicTerm(BaseModel):
    id: int
    session_id: Optional[int] = None
    name: str                                # 예: "First Term"
    is_current: bool = False

    model_config = ConfigDict(extra="ignore")


class Payment(BaseModel):
    id: int
    student_id: int
    amount: float = 0.0
    term: str = ""
    academic_year: str = ""
    status: Status = "Pending"               # Pending / Verified / Rejected

    model_config = ConfigDict(extra="ignore")


class Notification(BaseModel):
    id: Optional[int] = None
    title: str
    message: str
    type: str = "info"                       # info / warning / error / success
    target_audience: str = "all"             # all / teachers / parents / admins / accountants
    sender_id: Optional[int] = None
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None
    priority: str = "medium"

    model_config = ConfigDict(extra="ignore")
