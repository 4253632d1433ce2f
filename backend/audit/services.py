from __future__ import annotations

import logging
from typing import Any, Optional

from django.http import HttpRequest

from .models import AuditLog


logger = logging.getLogger(__name__)


def get_client_ip(request: HttpRequest) -> str:
	xff = (request.META.get("HTTP_X_FORWARDED_FOR") or "").strip()
	if xff:
		# XFF can contain multiple IPs: client, proxy1, proxy2...
		return xff.split(",")[0].strip()
	return (request.META.get("REMOTE_ADDR") or "").strip()


def log_event(
	request: HttpRequest,
	*,
	event_type: str,
	actor=None,
	object_type: str = "",
	object_id: str | Any = "",
	metadata: Optional[dict[str, Any]] = None,
) -> Optional[AuditLog]:
	"""Records an audit event.

	`actor` defaults to the authenticated user. Public flows pass the user
	they resolved themselves (e.g. the QR-code owner). Without either, nothing
	is written.
	"""

	if actor is None:
		user = getattr(request, "user", None)
		if getattr(user, "is_authenticated", False):
			actor = user
	if actor is None:
		logger.warning("audit.skipped_without_actor", extra={"event_type": event_type})
		return None

	obj_id_str = str(object_id) if object_id is not None else ""
	entry = AuditLog.objects.create(
		actor=actor,
		event_type=event_type,
		object_type=object_type or "",
		object_id=obj_id_str,
		path=(getattr(request, "path", "") or "")[:300],
		method=(getattr(request, "method", "") or ""),
		ip_address=get_client_ip(request),
		user_agent=(request.META.get("HTTP_USER_AGENT") or "")[:4000],
		metadata=metadata or {},
	)
	logger.info("audit.%s", event_type, extra={"object_id": obj_id_str, "actor_id": actor.pk})
	return entry
