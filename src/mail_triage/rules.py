"""Local rule matching.

Objective:
    Classify obvious messages without calling the AI service. Rules are
    declared in config and evaluated against :class:`ExtractedContent`.

Matching logic:
    - Rules are tried in descending priority; equal priorities keep their
      declaration order. The first matching rule wins.
    - Each non-empty condition list of a rule contributes one boolean:
        - subject keywords: case-insensitive substring of the subject
        - sender domains: sender ends with ``@domain`` or contains ``domain``
        - sender addresses: case-insensitive equality with the sender
        - body keywords: case-insensitive substring of the body
    - ``ALL`` requires every present list to match, ``ANY`` at least one.
    - A rule without any non-empty list never matches.

High-level call tree:
    - :class:`RuleMatcher`
        - :meth:`RuleMatcher.match`
            - :func:`evaluate_rule`
                - :func:`condition_results`
"""

import logging
from typing import Iterable, Optional

from .config import ClassificationRule, MatchType, RuleConditions
from .models import ExtractedContent

logger = logging.getLogger(__name__)


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def _sender_in_domains(sender: str, domains: Iterable[str]) -> bool:
    lowered = sender.lower()
    for domain in domains:
        domain_lower = domain.lower()
        if lowered.endswith("@" + domain_lower) or domain_lower in lowered:
            return True
    return False


def _sender_is_one_of(sender: str, addresses: Iterable[str]) -> bool:
    lowered = sender.lower()
    return any(lowered == address.lower() for address in addresses)


def condition_results(conditions: RuleConditions, content: ExtractedContent) -> list[bool]:
    """Evaluate every non-empty condition list of a rule.

    Args:
        conditions: Rule conditions.
        content: Extracted message content.

    Returns:
        list[bool]: One result per non-empty list, in a fixed order
        (subject, sender domains, sender addresses, body).
    """
    results = []

    if conditions.subject_keywords:
        results.append(_contains_any(content.subject, conditions.subject_keywords))

    if conditions.sender_domains:
        results.append(_sender_in_domains(content.sender, conditions.sender_domains))

    if conditions.sender_addresses:
        results.append(_sender_is_one_of(content.sender, conditions.sender_addresses))

    if conditions.body_keywords:
        results.append(_contains_any(content.body, conditions.body_keywords))

    return results


def evaluate_rule(rule: ClassificationRule, content: ExtractedContent) -> bool:
    """Check whether a single rule matches.

    Args:
        rule: Rule to evaluate.
        content: Extracted message content.

    Returns:
        bool: True if the rule matches.
    """
    results = condition_results(rule.conditions, content)
    if not results:
        return False

    if rule.conditions.match_type == MatchType.ALL:
        matched = all(results)
    else:
        matched = any(results)

    logger.debug(
        "Rule '%s': %s conditions, result: %s", rule.name, len(results), matched
    )
    return matched


class RuleMatcher:
    """
    Evaluates prioritized rules against extracted content.

    The sorted rule list is computed once at construction; rules are
    immutable for the lifetime of a run.

    Attributes:
        rules: Rules in evaluation order.
    """

    def __init__(self, rules: Iterable[ClassificationRule]) -> None:
        # sorted() is stable, so equal priorities keep declaration order.
        self.rules = sorted(rules, key=lambda r: r.priority, reverse=True)

    def match(self, content: ExtractedContent) -> Optional[str]:
        """Return the classification of the first matching rule.

        Args:
            content: Extracted message content.

        Returns:
            Optional[str]: Classification key, or None when no rule matches.
        """
        for rule in self.rules:
            if evaluate_rule(rule, content):
                logger.debug(
                    "Rule '%s' matched - Classification: %s", rule.name, rule.classification
                )
                return rule.classification
        return None
