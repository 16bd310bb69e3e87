from __future__ import annotations

import logging
import traceback
from typing import Any

from habit_api.core.config import settings
from habit_api.services.privacy import redact_secrets_text, sanitize_for_log
from habit_api.services.supabase_rest import SupabaseRest

logger = logging.getLogger(__name__)


async def log_system_error(
    sb: SupabaseRest,
    *,
    route: str,
    message: str,
    user_id: str | None = None,
    err: BaseException | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    logger.error(
        "%s (route=%s)",
        message,
        route,
        exc_info=(type(err), err, err.__traceback__) if err is not None else None,
    )

    # Best-effort audit row; never raise.
    try:
        stack = None
        if err is not None:
            raw_stack = "".join(
                traceback.format_exception(type(err), err, err.__traceback__)
            )[:8000]
            stack = redact_secrets_text(raw_stack)

        row: dict[str, Any] = {
            "route": sanitize_for_log(route),
            "message": sanitize_for_log(message),
            "stack": stack,
            "user_id": user_id,
            "meta": sanitize_for_log(meta or {}),
        }
        # Server-managed audit table write: service-role only.
        await sb.insert_one(
            "system_errors", bearer_token=settings.supabase_service_role_key, row=row
        )
    except Exception:
        logger.warning("Failed to persist system error row", exc_info=True)
