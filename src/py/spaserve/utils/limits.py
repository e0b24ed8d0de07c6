from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


# Darwin reports very high hard limits that lead to OverflowErrors, so we
# cap what we ask for.
REASONABLE_LIMITS: dict[LimitType, int] = {
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(scope: LimitType, ratio: float = 1.0) -> int | bool:
	"""Raises the soft limit of the given resource towards its hard limit,
	returning the new limit or `False` when it can't be changed."""
	lm = limit(scope)
	hard = lm.hard if lm.hard != resource.RLIM_INFINITY else None
	target = lm.soft if hard is None else int(lm.soft + ratio * (hard - lm.soft))
	if (maximum := REASONABLE_LIMITS.get(scope)) is not None:
		target = max(lm.soft, min(maximum, target))
	try:
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except ValueError:
		return False
	except OSError:
		return False


# EOF
