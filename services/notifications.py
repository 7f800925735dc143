import logging
from typing import Optional

from schemas.auth import Identity
from schemas.school import Notification
from services.school_client import SchoolAPIClient, SchoolAPIError

logger = logging.getLogger(__name__)


def send_notification(
    client: SchoolAPIClient,
    title: str,
    message: str,
    *,
    target_audience: str,
    sender: Optional[Identity] = None,
    type: str = "info",
    priority: str = "medium",
) -> bool:
    """
    알림 발송 (fire-and-forget)
    - 실패해도 예외를 올리지 않고 로그만 남긴다. 호출한 쪽의 저장 결과는 되돌리지 않음
    - 성공 여부만 bool 로 돌려준다
    """
    notification = Notification(
        title=title,
        message=message,
        type=type,
        target_audience=target_audience,
        sender_id=sender.id if sender else None,
        sender_name=sender.name if sender else None,
        sender_role=sender.role if sender else None,
        priority=priority,
    )
    try:
        client.create_notification(notification.model_dump(exclude_none=True))
    except SchoolAPIError as e:
        logger.warning("notification not delivered (%s): %s", title, e.message)
        return False
    return True
