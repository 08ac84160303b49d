"""In-memory rule catalog with the operator CRUD surface."""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

import structlog

from vitals_engine.domain.models import RuleDefinition

logger = structlog.get_logger(__name__)


class InMemoryRuleRepository:
    """Rules keyed by id. Listings are ordered by descending priority."""

    def __init__(self, rules: Iterable[RuleDefinition] = ()) -> None:
        self._rules: dict[str, RuleDefinition] = {rule.id: rule for rule in rules}
        self.fail_with: Exception | None = None
        self.logger = logger.bind(component="memory_rule_repository")

    async def list_enabled_rules(self) -> list[RuleDefinition]:
        if self.fail_with is not None:
            raise self.fail_with
        return [rule for rule in await self.list_rules() if rule.enabled]

    async def upsert_default_rule(self, rule: RuleDefinition) -> RuleDefinition | None:
        if any(existing.name == rule.name for existing in self._rules.values()):
            return None
        self._rules[rule.id] = rule
        return rule

    async def create_rule(self, rule: RuleDefinition) -> RuleDefinition:
        if rule.id in self._rules:
            raise ValueError(f"Rule {rule.id} already exists")
        self._rules[rule.id] = rule
        self.logger.info("rule_created", rule_id=rule.id, rule_name=rule.name)
        return rule

    async def list_rules(self) -> list[RuleDefinition]:
        return sorted(self._rules.values(), key=lambda r: r.priority, reverse=True)

    async def get_rule(self, rule_id: str) -> RuleDefinition | None:
        return self._rules.get(rule_id)

    async def update_rule(self, rule_id: str, **changes: Any) -> RuleDefinition:
        """
        Apply field changes to a stored rule.

        Raises:
            KeyError: no rule with that id
            pydantic.ValidationError: the changed rule is invalid
        """
        current = self._rules.get(rule_id)
        if current is None:
            raise KeyError(rule_id)

        updated = RuleDefinition.model_validate(
            {
                **dict(current),
                **changes,
                "id": rule_id,
                "created_at": current.created_at,
                "updated_at": datetime.now(UTC),
            }
        )
        self._rules[rule_id] = updated
        self.logger.info("rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    async def delete_rule(self, rule_id: str) -> bool:
        deleted = self._rules.pop(rule_id, None) is not None
        if deleted:
            self.logger.info("rule_deleted", rule_id=rule_id)
        return deleted
