"""Schemas for i18n endpoints."""

from pydantic import BaseModel


class LocaleInfo(BaseModel):
    code: str
    name: str


class LocalesResponse(BaseModel):
    current: str
    default: str
    locales: list[LocaleInfo]


class TranslationsResponse(BaseModel):
    locale: str
    messages: dict[str, str]
