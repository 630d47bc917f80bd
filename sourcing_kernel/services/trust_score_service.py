"""
sourcing_kernel.services.trust_score_service -- trust score lookup and refresh.

Responsibility:
    Reads an actor's history through HistorySelector and scores it with the
    pure ``domain.trust.compute_trust_score``.  ``score`` and ``explain``
    are side-effect free; ``refresh`` stores the new value on the actor
    and appends a TrustScoreSnapshot.

Failure modes:
    - ActorNotFoundError if actor_id is unknown.
    - ValidationError if the requested role does not match the actor.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.domain.dtos import TrustScoreSnapshotInfo
from sourcing_kernel.domain.policy import TrustPolicy
from sourcing_kernel.domain.trust import ActorRole, TrustScore, compute_trust_score
from sourcing_kernel.exceptions import ActorNotFoundError, ValidationError
from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.models.actor import Actor
from sourcing_kernel.models.reputation import TrustScoreSnapshot
from sourcing_kernel.selectors.history_selector import HistorySelector

logger = get_logger("services.trust_score")


class TrustScoreService:
    def __init__(
        self,
        session: Session,
        policy: TrustPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._policy = policy or TrustPolicy()
        self._clock = clock or SystemClock()
        self._history = HistorySelector(session)

    def score(self, actor_id: UUID, role: ActorRole | str | None = None) -> int:
        """Current computed score in [floor, 100]; 50 for actors with no orders."""
        return self.explain(actor_id, role).score

    def explain(self, actor_id: UUID, role: ActorRole | str | None = None) -> TrustScore:
        actor = self._get_actor(actor_id)
        resolved = self._resolve_role(actor, role)
        history = self._history.for_actor(actor_id, resolved)
        return compute_trust_score(history, self._policy)

    def refresh(self, actor_id: UUID, reason: str = "recalculated") -> TrustScore:
        """Recompute and persist the actor's score with a history snapshot."""
        actor = self._get_actor(actor_id)
        result = compute_trust_score(
            self._history.for_actor(actor_id, ActorRole(actor.role)), self._policy
        )
        previous = actor.trust_score
        actor.trust_score = result.score
        self._session.add(
            TrustScoreSnapshot(
                actor_id=actor_id,
                role=actor.role,
                score=result.score,
                factors=dict(result.factors),
                reason=reason,
                created_at=self._clock.now(),
            )
        )
        self._session.flush()
        logger.info(
            "trust_score_refreshed",
            extra={
                "actor_id": str(actor_id),
                "role": actor.role,
                "previous_score": previous,
                "score": result.score,
                "reason": reason,
            },
        )
        return result

    def history(self, actor_id: UUID, limit: int = 20) -> list[TrustScoreSnapshotInfo]:
        self._get_actor(actor_id)
        rows = self._session.execute(
            select(TrustScoreSnapshot)
            .where(TrustScoreSnapshot.actor_id == actor_id)
            .order_by(TrustScoreSnapshot.created_at.desc(), TrustScoreSnapshot.id)
            .limit(limit)
        ).scalars()
        return [
            TrustScoreSnapshotInfo(
                actor_id=r.actor_id,
                score=r.score,
                factors=dict(r.factors),
                reason=r.reason,
                created_at=r.created_at,
            )
            for r in rows
        ]

    def rankings(self, role: ActorRole | str, limit: int = 10) -> list[tuple[UUID, str, int]]:
        """Top actors of ``role`` by stored trust score."""
        role = ActorRole(role)
        rows = self._session.execute(
            select(Actor.id, Actor.name, Actor.trust_score)
            .where(Actor.role == role.value, Actor.is_active.is_(True))
            .order_by(Actor.trust_score.desc(), Actor.id)
            .limit(limit)
        ).all()
        return [(r.id, r.name, r.trust_score) for r in rows]

    def _get_actor(self, actor_id: UUID) -> Actor:
        actor = self._session.get(Actor, actor_id)
        if actor is None:
            raise ActorNotFoundError(str(actor_id))
        return actor

    @staticmethod
    def _resolve_role(actor: Actor, role: ActorRole | str | None) -> ActorRole:
        actual = ActorRole(actor.role)
        if role is None:
            return actual
        requested = ActorRole(role)
        if requested != actual:
            raise ValidationError(
                f"Actor {actor.id} is a {actual.value}, not a {requested.value}",
                field="role",
            )
        return requested
