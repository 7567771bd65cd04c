"""Rule-based category suggestions for new transactions.

Active rules are tried in descending priority; the first match wins.
When no rule matches, the category most often used with a similar payee
is suggested instead. `learn_from_history` turns frequent payee/category
pairs into payee rules.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import select

from . import models, schemas
from .errors import InvalidOperationError, NotFoundError
from .services import _DomainService, snapshot, utcnow

RMT = models.RuleMatchType
AMOUNT_MATCHES = (RMT.AMOUNT_EQUALS, RMT.AMOUNT_GREATER_THAN, RMT.AMOUNT_LESS_THAN)
LEARNED_RULE_PRIORITY = 50
MAX_LEARNED_RULES = 50

logger = logging.getLogger("nonprofit_manager.categorization")


def _contains(text: Optional[str], pattern: str, case_sensitive: bool) -> bool:
    if not text or not text.strip():
        return False
    if case_sensitive:
        return pattern in text
    return pattern.lower() in text.lower()


def _amount(pattern: str) -> Optional[Decimal]:
    try:
        return Decimal(pattern.strip())
    except (InvalidOperation, ValueError):
        return None


def rule_matches(rule: models.CategorizationRule, payee: Optional[str], description: Optional[str],
                 amount: Optional[Decimal]) -> bool:
    if rule.match_type == RMT.PAYEE:
        return _contains(payee, rule.match_pattern, rule.case_sensitive)
    if rule.match_type == RMT.DESCRIPTION:
        return _contains(description, rule.match_pattern, rule.case_sensitive)
    target = _amount(rule.match_pattern)
    if target is None or amount is None:
        return False
    if rule.match_type == RMT.AMOUNT_EQUALS:
        return amount == target
    if rule.match_type == RMT.AMOUNT_GREATER_THAN:
        return amount > target
    return amount < target


class CategorizationService(_DomainService):
    def list(self, include_inactive: bool = True) -> List[models.CategorizationRule]:
        stmt = select(models.CategorizationRule)
        if not include_inactive:
            stmt = stmt.where(models.CategorizationRule.is_active == True)  # noqa: E712
        stmt = stmt.order_by(models.CategorizationRule.priority.desc(), models.CategorizationRule.id)
        return self.session.exec(stmt).all()

    def get(self, rule_id: int) -> models.CategorizationRule:
        rule = self.session.get(models.CategorizationRule, rule_id)
        if not rule:
            raise NotFoundError("CategorizationRule", rule_id)
        return rule

    def create(self, data: schemas.RuleIn) -> models.CategorizationRule:
        self._validate(data.match_type, data.match_pattern, data.category_id)
        rule = models.CategorizationRule(**data.model_dump())
        self.session.add(rule)
        self.session.commit()
        self.session.refresh(rule)
        self.audit.log(models.AuditAction.CREATE, "CategorizationRule", rule.id,
                       f"Created categorization rule {rule.name}", new_values=snapshot(rule))
        return rule

    def update(self, rule_id: int, data: schemas.RuleUpdate) -> models.CategorizationRule:
        rule = self.get(rule_id)
        old = snapshot(rule)
        changes = data.model_dump(exclude_unset=True)
        self._validate(changes.get("match_type", rule.match_type), changes.get("match_pattern", rule.match_pattern),
                       changes.get("category_id", rule.category_id))
        for key, value in changes.items():
            setattr(rule, key, value)
        rule.updated_at = utcnow()
        self.session.add(rule)
        self.session.commit()
        self.session.refresh(rule)
        self.audit.log(models.AuditAction.UPDATE, "CategorizationRule", rule.id,
                       f"Updated categorization rule {rule.name}", old_values=old, new_values=snapshot(rule))
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        old = snapshot(rule)
        self.session.delete(rule)
        self.session.commit()
        self.audit.log(models.AuditAction.DELETE, "CategorizationRule", rule_id,
                       f"Deleted categorization rule {old['name']}", old_values=old)

    def suggest(self, payee: Optional[str] = None, description: Optional[str] = None,
                amount: Optional[Decimal] = None) -> schemas.CategorySuggestion:
        for rule in self.list(include_inactive=False):
            if rule_matches(rule, payee, description, amount):
                logger.debug("rule %s matched; suggesting category %s", rule.id, rule.category_id)
                return schemas.CategorySuggestion(category_id=rule.category_id, rule_id=rule.id, source="rule")
        if payee and payee.strip():
            T = models.Transaction
            stmt = (
                select(T.category_id, func.count(T.id).label("uses"))
                .where(
                    T.is_deleted == False,  # noqa: E712
                    T.category_id.is_not(None),
                    func.lower(T.payee).like(f"%{payee.strip().lower()}%"),
                )
                .group_by(T.category_id)
                .order_by(func.count(T.id).desc(), T.category_id)
            )
            top = self.session.exec(stmt).first()
            if top is not None:
                return schemas.CategorySuggestion(category_id=top[0], source="history")
        return schemas.CategorySuggestion()

    def learn_from_history(self, minimum_occurrences: int = 3) -> int:
        """Create payee rules for payee/category pairs used at least `minimum_occurrences` times."""
        if minimum_occurrences < 1:
            raise InvalidOperationError("minimum_occurrences must be at least 1")
        T = models.Transaction
        stmt = (
            select(T.payee, T.category_id, func.count(T.id).label("uses"))
            .where(T.is_deleted == False, T.payee.is_not(None), T.category_id.is_not(None))  # noqa: E712
            .group_by(T.payee, T.category_id)
            .having(func.count(T.id) >= minimum_occurrences)
            .order_by(func.count(T.id).desc(), T.payee)
            .limit(MAX_LEARNED_RULES)
        )
        existing = {
            r.match_pattern for r in self.session.exec(
                select(models.CategorizationRule).where(models.CategorizationRule.match_type == RMT.PAYEE)
            ).all()
        }
        created = 0
        for payee, category_id, _ in self.session.exec(stmt).all():
            if not payee.strip() or payee in existing:
                continue
            self.session.add(models.CategorizationRule(
                name=f"Auto: {payee}"[:200], match_type=RMT.PAYEE, match_pattern=payee,
                category_id=category_id, priority=LEARNED_RULE_PRIORITY,
            ))
            existing.add(payee)
            created += 1
        self.session.commit()
        if created:
            self.audit.log(models.AuditAction.CREATE, "CategorizationRule", None,
                           f"Learned {created} categorization rules from transaction history")
        logger.info("learned %d categorization rules", created)
        return created

    def _validate(self, match_type: models.RuleMatchType, pattern: str, category_id: int) -> None:
        if match_type in AMOUNT_MATCHES and _amount(pattern) is None:
            raise InvalidOperationError(f"Pattern '{pattern}' is not a valid amount")
        if self.session.get(models.Category, category_id) is None:
            raise InvalidOperationError(f"Category {category_id} does not exist")
