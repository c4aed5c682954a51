"""Typed payloads and validation schemas for the five form sections."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .models import SECTION_KEYS, section_for_step

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class SectionModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="allow",
    )


class BasicInfoSection(SectionModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    nationality: str | None = None
    home_university: str = Field(min_length=1)
    home_department: str | None = None
    level_of_study: Literal["Bachelor", "Master", "PhD"]
    host_university: str = Field(min_length=1)
    host_country: str = Field(min_length=1)
    host_city: str = Field(min_length=1)
    exchange_period: Literal["Semester", "Full Year"]
    exchange_start_date: str = Field(min_length=1)
    exchange_end_date: str = Field(min_length=1)
    language_of_instruction: str | None = None
    motivation_for_exchange: str | None = None

    @model_validator(mode="after")
    def _dates_in_order(self) -> "BasicInfoSection":
        # ISO dates compare correctly as strings.
        if self.exchange_end_date < self.exchange_start_date:
            raise ValueError("exchangeEndDate must not be before exchangeStartDate")
        return self


class CourseMapping(SectionModel):
    home_course: str = Field(min_length=3, max_length=200)
    host_course: str = Field(min_length=3, max_length=200)
    ects: int = Field(ge=1, le=30)
    course_quality: int | None = Field(default=None, ge=1, le=5)
    language: str | None = None
    approved: bool | None = None


class CoursesSection(SectionModel):
    courses: list[CourseMapping] = Field(min_length=1, max_length=15)
    difficulty_notes: str | None = None


class AccommodationSection(SectionModel):
    accommodation_type: Literal[
        "Student Residence",
        "Private Apartment",
        "Shared Apartment",
        "Studio",
        "Homestay",
        "Other",
    ]
    accommodation_address: str = Field(min_length=1)
    neighborhood: str | None = None
    monthly_rent: float = Field(ge=0)
    bills_included: Literal["Yes", "No", "Partially"]
    accommodation_rating: int = Field(ge=1, le=5)
    would_recommend: bool
    booking_tips: str | None = None


class LivingExpensesSection(SectionModel):
    currency: Literal["EUR"] = "EUR"
    monthly_food: float = Field(ge=0)
    monthly_transport: float = Field(ge=0)
    monthly_entertainment: float | None = Field(default=None, ge=0)
    monthly_utilities: float | None = Field(default=None, ge=0)
    monthly_other: float | None = Field(default=None, ge=0)
    expenses: dict[str, float] = Field(default_factory=dict)
    budget_tips: str | None = Field(default=None, max_length=1000)

    @field_validator("expenses")
    @classmethod
    def _non_negative_expenses(cls, value: dict[str, float]) -> dict[str, float]:
        for label, amount in value.items():
            if amount < 0:
                raise ValueError(f"expense {label!r} must not be negative")
        return value


class HelpFutureStudents(SectionModel):
    want_to_help: bool = False
    contact_method: Literal["email", "instagram", "facebook", "linkedin", "phone"] | None = None
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN)

    @model_validator(mode="after")
    def _contact_when_helping(self) -> "HelpFutureStudents":
        if self.want_to_help and not self.contact_method:
            raise ValueError("contactMethod is required when wantToHelp is set")
        return self


class ExperienceSection(SectionModel):
    overall_rating: int = Field(ge=1, le=5)
    academic_rating: int | None = Field(default=None, ge=1, le=5)
    social_rating: int | None = Field(default=None, ge=1, le=5)
    highlights: str = Field(min_length=20, max_length=2000)
    challenges: str | None = None
    tips: list[str] = Field(default_factory=list, max_length=10)
    would_recommend: bool
    help_future_students: HelpFutureStudents | None = None


SECTION_SCHEMAS: dict[str, type[SectionModel]] = {
    "basicInfo": BasicInfoSection,
    "courses": CoursesSection,
    "accommodation": AccommodationSection,
    "livingExpenses": LivingExpensesSection,
    "experience": ExperienceSection,
}


def _field_errors(err: SchemaError) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    for item in err.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "__root__")
        errors.append({"field": location or "__all__", "message": str(item.get("msg") or "invalid value")})
    return errors


def validate_section(section: str, payload: Any) -> SectionModel:
    """Validate one section payload, raising ``ValidationError`` on failure."""
    schema = SECTION_SCHEMAS.get(section)
    if schema is None:
        raise ValidationError(f"Unknown section: {section!r}", section=section)
    if not isinstance(payload, dict) or not payload:
        raise ValidationError(
            f"Section {section} is empty",
            [{"field": "__all__", "message": "section has not been filled in"}],
            section=section,
        )
    try:
        return schema.model_validate(payload)
    except SchemaError as err:
        raise ValidationError(f"Section {section} is invalid", _field_errors(err), section=section) from err


def validate_step(step: int, sections: dict[str, Any]) -> SectionModel:
    section = section_for_step(step)
    return validate_section(section, sections.get(section))


def validate_all_sections(sections: dict[str, Any]) -> None:
    """Validate every section; the raised error lists failures across all of them."""
    errors: list[dict[str, str]] = []
    for section in SECTION_KEYS:
        try:
            validate_section(section, sections.get(section))
        except ValidationError as err:
            errors.extend({"field": f"{section}.{item['field']}", "message": item["message"]} for item in err.errors)
    if errors:
        raise ValidationError("All form sections must be completed before submission", errors)
