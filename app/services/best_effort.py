"""
Attempt-and-collect

Runs independent cleanup actions one after another, never letting one
failure stop the rest, and reports what happened to each.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from app.core.exceptions import RemoteAPIError

logger = logging.getLogger("axp.cleanup")

CleanupAction = Tuple[str, Callable[[], Awaitable[None]]]


@dataclass
class CleanupReport:
    succeeded: List[str] = field(default_factory=list)
    already_gone: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict:
        return {
            "succeeded": list(self.succeeded),
            "already_gone": list(self.already_gone),
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
        }


async def attempt_all(
    actions: Sequence[Optional[CleanupAction]],
    *,
    report: Optional[CleanupReport] = None,
) -> CleanupReport:
    """
    Await each action in order; ``None`` entries are ignored. Callers
    record deliberately skipped actions in ``report.skipped`` themselves.

    A remote 404 counts as success: the resource is already gone.
    """
    report = report or CleanupReport()
    for item in actions:
        if item is None:
            continue
        name, action = item
        try:
            await action()
        except RemoteAPIError as e:
            if e.is_not_found:
                logger.info("Cleanup %s: already gone", name)
                report.already_gone.append(name)
            else:
                logger.error("Cleanup %s failed: %s", name, e)
                report.failed[name] = str(e)
        except Exception as e:
            logger.error("Cleanup %s failed: %s", name, e, exc_info=True)
            report.failed[name] = str(e)
        else:
            report.succeeded.append(name)
    return report
