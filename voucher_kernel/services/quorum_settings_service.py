"""
QuorumSettingsService -- runtime quorum threshold.

Responsibility:
    Reads and updates the administrator-adjustable number of distinct
    reviewer votes required to satisfy a quorum stage.

Architecture position:
    Kernel > Services.  Backed by ``SystemSettingModel``.

Invariants enforced:
    - Read at evaluation time, never cached: a change applies to in-flight
      vouchers on their next action.
    - Range validated on update, never silently clamped.

Failure modes:
    - ConfigurationError: update outside ``[min_threshold, max_threshold]``,
      non-integer input, or a corrupt stored value.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from voucher_kernel.domain.clock import Clock, SystemClock
from voucher_kernel.domain.workflow import QuorumPolicy
from voucher_kernel.exceptions import ConfigurationError
from voucher_kernel.logging_config import get_logger
from voucher_kernel.models.system_setting import SystemSettingModel
from voucher_kernel.services.auditor_service import AuditorService

logger = get_logger("services.quorum_settings")


class QuorumSettingsService:
    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        policy: QuorumPolicy,
        clock: Clock | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._policy = policy
        self._clock = clock or SystemClock()

    @property
    def policy(self) -> QuorumPolicy:
        return self._policy

    def _load(self) -> SystemSettingModel | None:
        return self._session.execute(
            select(SystemSettingModel)
            .where(SystemSettingModel.key == self._policy.setting_key)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_threshold(self) -> int:
        """Current threshold, or the policy default when never set."""
        setting = self._load()
        if setting is None:
            return self._policy.default_threshold

        try:
            value = int(setting.value)
        except ValueError as exc:
            raise ConfigurationError(
                self._policy.setting_key, setting.value, "stored value is not an integer"
            ) from exc

        if not self._policy.is_within_bounds(value):
            raise ConfigurationError(
                self._policy.setting_key,
                value,
                f"stored value outside {self._policy.min_threshold}"
                f"..{self._policy.max_threshold}",
            )
        return value

    def set_threshold(self, value: int, actor_id: UUID) -> int:
        """
        Validate and store a new threshold.

        Raises:
            ConfigurationError: ``value`` is not an int within bounds.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(
                self._policy.setting_key, value, "threshold must be an integer"
            )
        if not self._policy.is_within_bounds(value):
            raise ConfigurationError(
                self._policy.setting_key,
                value,
                f"threshold must be between {self._policy.min_threshold} "
                f"and {self._policy.max_threshold}",
            )

        setting = self._load()
        old_value = int(setting.value) if setting is not None and setting.value.isdigit() else None
        now = self._clock.now()
        if setting is None:
            self._session.add(SystemSettingModel(
                key=self._policy.setting_key,
                value=str(value),
                updated_by_id=actor_id,
                updated_at=now,
            ))
        else:
            setting.value = str(value)
            setting.updated_by_id = actor_id
            setting.updated_at = now
        self._session.flush()

        self._auditor.record_threshold_changed(
            self._policy.setting_key, old_value, value, actor_id
        )
        logger.info(
            "quorum_threshold_changed",
            extra={
                "setting_key": self._policy.setting_key,
                "old_value": old_value,
                "new_value": value,
            },
        )
        return value
