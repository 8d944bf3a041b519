"""Translation catalog endpoints for API clients."""

from fastapi import APIRouter, Request

from backoffice.config import settings
from backoffice.core.errors import NotFoundError
from backoffice.core.i18n.schemas import LocaleInfo, LocalesResponse, TranslationsResponse
from backoffice.core.i18n.translator import load_catalog, translate


router = APIRouter(prefix="/i18n", tags=["i18n"])


@router.get(
    "/locales",
    response_model=LocalesResponse,
    summary="List supported locales",
)
async def list_locales(request: Request) -> LocalesResponse:
    current = getattr(request.state, "locale", settings.default_locale)
    return LocalesResponse(
        current=current,
        default=settings.default_locale,
        locales=[
            LocaleInfo(code=loc, name=translate(f"locales.{loc}", locale=loc))
            for loc in settings.supported_locales
        ],
    )


@router.get(
    "/translations/{locale}",
    response_model=TranslationsResponse,
    summary="Get a flattened translation catalog",
)
async def get_translations(locale: str) -> TranslationsResponse:
    if locale not in settings.supported_locales:
        raise NotFoundError(
            f"Locale '{locale}' is not supported",
            resource="locale",
            resource_id=locale,
        )
    return TranslationsResponse(locale=locale, messages=load_catalog(locale))
