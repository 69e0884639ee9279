"""
BootstrapService -- idempotent seed of the master administrator.

Responsibility:
    Guarantees that a user with the configured master username exists and
    holds the SUPER_ADMIN role.  Runs once at store initialization and again
    after every backup import.

Invariants enforced:
    - Idempotent: running the seed twice leaves exactly one master user.
    - The unique constraint on ``users.username`` guards against two
      concurrent seeders; the loser's insert is rolled back to a savepoint
      and the winner's row is updated instead.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.lifecycle import UserRole
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.user import User
from fuel_kernel.services.base import BaseService

logger = get_logger("services.bootstrap")


@dataclass(frozen=True)
class SeedResult:
    user_id: object
    created: bool
    role_restored: bool


class BootstrapService(BaseService[User]):
    def __init__(
        self,
        session,
        clock: Clock,
        admin_username: str = "admin",
        admin_display_name: str = "Master Administrator",
    ):
        super().__init__(session)
        self._clock = clock
        self._admin_username = admin_username
        self._admin_display_name = admin_display_name

    def seed(self) -> SeedResult:
        """Create or repair the master administrator."""
        user = self._find()
        if user is None:
            savepoint = self.session.begin_nested()
            try:
                now = self._clock.now()
                user = User(
                    username=self._admin_username,
                    display_name=self._admin_display_name,
                    role=UserRole.SUPER_ADMIN.value,
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(user)
                self.session.flush()
                savepoint.commit()
                logger.warning(
                    "master_admin_created",
                    extra={"user_id": str(user.id), "username": self._admin_username},
                )
                return SeedResult(user.id, created=True, role_restored=False)
            except IntegrityError:
                logger.debug("master_admin_seed_race_retry")
                savepoint.rollback()
                user = self._find()
                if user is None:
                    raise

        if UserRole(user.role) != UserRole.SUPER_ADMIN:
            user.role = UserRole.SUPER_ADMIN.value
            user.updated_at = self._clock.now()
            self.session.flush()
            logger.warning(
                "master_admin_role_restored",
                extra={"user_id": str(user.id), "username": self._admin_username},
            )
            return SeedResult(user.id, created=False, role_restored=True)

        logger.debug("master_admin_present", extra={"user_id": str(user.id)})
        return SeedResult(user.id, created=False, role_restored=False)

    def _find(self) -> User | None:
        return self.session.execute(
            select(User)
            .where(User.username == self._admin_username)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
