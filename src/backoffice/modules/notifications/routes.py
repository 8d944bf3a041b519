"""Notification API routes."""

from uuid import UUID

from fastapi import APIRouter, status

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.permissions import require_permission
from backoffice.modules.notifications.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationRuleCreate,
    NotificationRuleResponse,
    NotificationRuleUpdate,
    RuleTestRequest,
    RuleTestResponse,
)
from backoffice.modules.notifications.services import NotificationSvc


router = APIRouter(prefix="/notifications", tags=["notifications"])


# ============================================================
# Inbox
# ============================================================


@router.get("", response_model=NotificationListResponse, summary="My notifications")
async def list_notifications(
    service: NotificationSvc,
    current_user: CurrentUser,
    pagination: PageParams,
    unread_only: bool = False,
) -> NotificationListResponse:
    items, total, unread = await service.list_notifications(
        current_user.id,
        unread_only=unread_only,
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        unread=unread,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.post("/read-all", response_model=MarkAllReadResponse, summary="Mark all as read")
async def mark_all_read(
    service: NotificationSvc,
    current_user: CurrentUser,
) -> MarkAllReadResponse:
    return MarkAllReadResponse(marked=await service.mark_all_read(current_user.id))


# ============================================================
# Rules
# ============================================================


@router.get("/rules", response_model=list[NotificationRuleResponse], summary="List rules")
@require_permission("notifications.manage")
async def list_rules(
    service: NotificationSvc,
    current_user: CurrentUser,
    db: DBSession,
    is_active: bool | None = None,
) -> list[NotificationRuleResponse]:
    rules = await service.list_rules(is_active)
    return [NotificationRuleResponse.model_validate(r) for r in rules]


@router.post(
    "/rules",
    response_model=NotificationRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create rule",
)
@require_permission("notifications.manage")
async def create_rule(
    data: NotificationRuleCreate,
    service: NotificationSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> NotificationRuleResponse:
    rule = await service.create_rule(data, created_by=current_user.id)
    return NotificationRuleResponse.model_validate(rule)


@router.get("/rules/{rule_id}", response_model=NotificationRuleResponse, summary="Get rule")
@require_permission("notifications.manage")
async def get_rule(
    rule_id: UUID,
    service: NotificationSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> NotificationRuleResponse:
    return NotificationRuleResponse.model_validate(await service.get_rule(rule_id))


@router.patch("/rules/{rule_id}", response_model=NotificationRuleResponse, summary="Update rule")
@require_permission("notifications.manage")
async def update_rule(
    rule_id: UUID,
    data: NotificationRuleUpdate,
    service: NotificationSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> NotificationRuleResponse:
    return NotificationRuleResponse.model_validate(await service.update_rule(rule_id, data))


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete rule",
)
@require_permission("notifications.manage")
async def delete_rule(
    rule_id: UUID,
    service: NotificationSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await service.delete_rule(rule_id)


@router.post(
    "/rules/{rule_id}/test",
    response_model=RuleTestResponse,
    summary="Test rule against an activity",
    description="Report whether the rule matches a stored activity. No notification is sent.",
)
@require_permission("notifications.manage")
async def test_rule(
    rule_id: UUID,
    data: RuleTestRequest,
    service: NotificationSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RuleTestResponse:
    return RuleTestResponse(**await service.test_rule(rule_id, data.activity_id))


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark notification as read",
)
async def mark_read(
    notification_id: UUID,
    service: NotificationSvc,
    current_user: CurrentUser,
) -> NotificationResponse:
    notification = await service.mark_read(current_user.id, notification_id)
    return NotificationResponse.model_validate(notification)
