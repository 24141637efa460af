"""
Consensus Engine for the DNS monitor.

Queries every configured resolver concurrently for a domain, then decides
whether the resolvers disagree and which record set to treat as ground truth.

The vote is a best-effort majority over a handful of resolvers. It produces a
signal for human review and is not meant to withstand colluding resolvers.
"""

import asyncio
from typing import Optional, Protocol, Sequence, runtime_checkable

from .audit_logger import AuditLogger
from .doh_client import DoHResponse
from .enums import LogLevel, RecordType
from .models import ConsensusResult, ResolverAnswer


@runtime_checkable
class Resolver(Protocol):
    """Anything that can answer a DNS question for one resolver endpoint."""

    @property
    def name(self) -> str:
        ...

    async def query(self, domain: str, record_type: RecordType) -> DoHResponse:
        ...


def normalize_values(values: Sequence[str]) -> list[str]:
    """Order-independent form of a record value list."""
    return sorted(values)


def values_match(first: Sequence[str], second: Sequence[str]) -> bool:
    """
    Compare two record value lists as multisets.

    Equal only with identical cardinality and identical members.
    """
    if len(first) != len(second):
        return False
    return normalize_values(first) == normalize_values(second)


def has_discrepancy(answers: ResolverAnswer) -> bool:
    """True iff at least two resolvers returned non-empty, differing answers."""
    non_empty = [values for values in answers.values() if values]
    if len(non_empty) < 2:
        return False
    reference = non_empty[0]
    return any(not values_match(reference, other) for other in non_empty[1:])


def select_consensus(answers: ResolverAnswer) -> list[str]:
    """
    Pick the most common non-empty answer.

    Answers are grouped by their sorted, comma-joined form. The largest group
    wins; on a tie the group seen first in resolver order wins. The winner is
    returned in the order its first resolver reported it.
    """
    groups: dict[str, list] = {}
    for values in answers.values():
        if not values:
            continue
        key = ",".join(normalize_values(values))
        if key in groups:
            groups[key][0] += 1
        else:
            groups[key] = [1, list(values)]

    best: Optional[list] = None
    for group in groups.values():
        if best is None or group[0] > best[0]:
            best = group
    return best[1] if best is not None else []


class ConsensusEngine:
    """Fans a query out to every resolver and derives the consensus."""

    def __init__(
        self,
        resolvers: Sequence[Resolver],
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the consensus engine.

        Args:
            resolvers: Resolver clients, in the order used for tie-breaking
            logger: Optional audit logger
        """
        names = [resolver.name for resolver in resolvers]
        if len(set(names)) != len(names):
            raise ValueError(f"Resolver names must be unique: {names}")
        self._resolvers = list(resolvers)
        self._logger = logger

    @property
    def resolvers(self) -> list[Resolver]:
        return list(self._resolvers)

    async def resolve(self, domain: str, record_type: RecordType) -> ConsensusResult:
        """
        Query all resolvers concurrently and compute the consensus.

        Every resolver call is awaited before the vote. A failing resolver
        contributes an empty answer and is listed in ``failed_resolvers``.
        """
        responses = await asyncio.gather(
            *(self._query_one(resolver, domain, record_type) for resolver in self._resolvers)
        )

        answers: ResolverAnswer = {}
        failed: list[str] = []
        for resolver, response in zip(self._resolvers, responses):
            if response is None or not response.ok:
                answers[resolver.name] = []
                failed.append(resolver.name)
            else:
                answers[resolver.name] = list(response.values)

        return ConsensusResult(
            values=select_consensus(answers),
            discrepancy=has_discrepancy(answers),
            per_resolver=answers,
            failed_resolvers=failed,
        )

    async def _query_one(
        self, resolver: Resolver, domain: str, record_type: RecordType
    ) -> Optional[DoHResponse]:
        try:
            response = await resolver.query(domain, record_type)
        except Exception as e:
            # Resolver implementations should not raise; contain it regardless
            if self._logger:
                self._logger.log_error(
                    "ConsensusEngine",
                    f"Resolver {resolver.name} raised while querying {domain}",
                    error=e,
                    additional_data={"record_type": record_type.value},
                )
            return None

        if not response.ok and self._logger:
            self._logger.log(
                LogLevel.WARN,
                "ConsensusEngine",
                f"Resolver {resolver.name} failed for {domain}",
                {
                    "record_type": record_type.value,
                    "error_code": response.error.code.value if response.error else None,
                    "error": response.error.message if response.error else None,
                },
            )
        return response
