"""Per-request session validation.

States: no token, then codec check (malformed / expired / valid), then store
check (not found / expired / active). Every failure branch maps to a
``Redirect`` toward the login page of the request's area; only an active
session belonging to an active user yields ``Continue``.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from sessiongate.logging import get_logger, token_prefix
from sessiongate.service import messages
from sessiongate.service.auth import AuthStore
from sessiongate.service.outcome import (
    Area,
    AreaPaths,
    AuthFailure,
    AuthRequest,
    Continue,
    Identity,
    MessageKind,
    Outcome,
    Redirect,
)
from sessiongate.service.tokens import CredentialCodec, TokenStatus
from sessiongate.storage.errors import StoreUnavailable
from sessiongate.storage.models import utc_now

logger = get_logger(__name__)

Gate = Callable[[AuthRequest, Optional[Identity]], Outcome]


class SessionGuard:
    def __init__(
        self,
        store: AuthStore,
        codec: CredentialCodec,
        *,
        session_ttl_minutes: int = 15,
        paths: Optional[AreaPaths] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.codec = codec
        self.session_window = timedelta(minutes=session_ttl_minutes)
        self.paths = paths or AreaPaths()
        self._clock = clock

    def _deny(
        self,
        paths: AreaPaths,
        area: Area,
        reason: AuthFailure,
        kind: MessageKind,
        message: str,
        *,
        token: Optional[str] = None,
        clear_credential: bool = True,
    ) -> Redirect:
        logger.info(
            "session_rejected",
            area=area.value,
            reason=reason.value,
            token_prefix=token_prefix(token),
        )
        return Redirect(
            paths.login(area),
            kind,
            message,
            clear_credential=clear_credential,
            reason=reason,
        )

    def _discard(self, token: str) -> None:
        # The redirect stands even when the store is down
        try:
            self.store.delete_session_by_token(token)
        except StoreUnavailable as exc:
            logger.warning(
                "session_discard_failed",
                token_prefix=token_prefix(token),
                operation=exc.operation,
                error=exc.message,
            )

    def authenticate(self, request: AuthRequest, paths: Optional[AreaPaths] = None) -> Outcome:
        paths = paths or self.paths
        area = paths.area_for(request.path)
        token = request.credential()
        if not token:
            return self._deny(
                paths,
                area,
                AuthFailure.MISSING_CREDENTIAL,
                MessageKind.WARNING,
                messages.SESSION_NOT_FOUND,
                clear_credential=False,
            )

        check = self.codec.verify(token)
        if check.status is TokenStatus.MALFORMED:
            return self._deny(
                paths,
                area,
                AuthFailure.MALFORMED_CREDENTIAL,
                MessageKind.ERROR,
                messages.INVALID_TOKEN,
                token=token,
            )
        if check.status is TokenStatus.EXPIRED:
            self._discard(token)
            return self._deny(
                paths,
                area,
                AuthFailure.CREDENTIAL_EXPIRED,
                MessageKind.WARNING,
                messages.SESSION_EXPIRED,
                token=token,
            )

        found = self.store.fetch_session_with_user(token)
        if found is None or found[1].id != check.user_id:
            self._discard(token)
            return self._deny(
                paths,
                area,
                AuthFailure.SESSION_NOT_FOUND,
                MessageKind.WARNING,
                messages.SESSION_EXPIRED,
                token=token,
            )

        session, user = found
        now = self._clock()
        if not session.is_live(now):
            self._discard(token)
            return self._deny(
                paths,
                area,
                AuthFailure.SESSION_EXPIRED,
                MessageKind.WARNING,
                messages.SESSION_EXPIRED,
                token=token,
            )
        # Deactivation revokes access without touching the session row
        if not user.active:
            return self._deny(
                paths,
                area,
                AuthFailure.USER_INACTIVE,
                MessageKind.ERROR,
                messages.USER_INACTIVE,
                token=token,
            )

        expires_at = now + self.session_window
        if not self.store.renew_session(session.id, expires_at):
            return self._deny(
                paths,
                area,
                AuthFailure.SESSION_NOT_FOUND,
                MessageKind.WARNING,
                messages.SESSION_EXPIRED,
                token=token,
            )
        return Continue(
            Identity(
                user=user,
                session_id=session.id,
                token=token,
                expires_at=expires_at,
                is_admin_area=area is Area.ADMIN,
            )
        )

    def redirect_if_authenticated(
        self, request: AuthRequest, paths: Optional[AreaPaths] = None
    ) -> Outcome:
        """Send visitors who already hold a signed token past the login page.

        Only the codec is consulted; a stale or tampered cookie is dropped
        and the login page renders normally.
        """
        token = request.cookie_token
        if not token:
            return Continue()
        paths = paths or self.paths
        area = paths.area_for(request.path)
        if self.codec.verify(token).valid:
            return Redirect(paths.landing(area))
        return Continue(clear_credential=True)


def run_pipeline(
    request: AuthRequest,
    guard: SessionGuard,
    *gates: Gate,
    paths: Optional[AreaPaths] = None,
) -> Outcome:
    outcome = guard.authenticate(request, paths)
    for gate in gates:
        if isinstance(outcome, Redirect):
            break
        outcome = gate(request, outcome.identity)
    return outcome
