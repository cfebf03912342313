"""Request / response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, field_validator, model_validator

from otp_verify.config import settings


class SendOtpRequest(BaseModel):
    email: EmailStr


class OtpSendResponse(BaseModel):
    email: str
    expires_at: datetime


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str

    @field_validator("code")
    @classmethod
    def code_must_be_numeric(cls, value: str) -> str:
        value = value.strip()
        if len(value) != settings.otp_length or not value.isdigit():
            raise ValueError(f"OTP code must be a {settings.otp_length}-digit number.")
        return value


class OtpVerifyResponse(BaseModel):
    email: str
    verified: bool
    error: str | None = None


class WelcomeEmailRequest(BaseModel):
    email: EmailStr
    subject: str
    text_body: str | None = None
    html_body: str | None = None

    @field_validator("subject")
    @classmethod
    def subject_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Subject is required.")
        return value

    @model_validator(mode="after")
    def body_required(self) -> WelcomeEmailRequest:
        has_text = bool(self.text_body and self.text_body.strip())
        has_html = bool(self.html_body and self.html_body.strip())
        if not has_text and not has_html:
            raise ValueError("Either text_body or html_body must be provided.")
        return self
