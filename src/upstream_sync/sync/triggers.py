"""Post-sync triggers.

A trigger names a set of relative-path prefixes and a command.  After a
verified sync, every trigger with at least one synced path under one of its
prefixes runs once, in the local tree, with a timeout.  The engine does not
know what the commands do (rebuild a derived artifact, regenerate an
index); it only reports whether they succeeded.  Failures are collected,
never raised.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .models import TriggerOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostSyncTrigger:
    """One configured trigger.

    Attributes:
        name: Label used in reports.
        prefixes: Relative-path prefixes; a prefix without a trailing
            ``/`` also matches the exact path.
        command: argv list (a string is split with ``shlex``).  The
            placeholder ``{local_dir}`` is replaced by the local root.
        timeout: Seconds before the command is killed.
    """

    name: str
    prefixes: tuple[str, ...]
    command: tuple[str, ...]
    timeout: float = 30.0

    @classmethod
    def from_config(
        cls,
        name: str,
        prefixes: list[str],
        command: str | list[str],
        timeout: float = 30.0,
    ) -> "PostSyncTrigger":
        argv = shlex.split(command) if isinstance(command, str) else command
        if not argv:
            raise ValueError(f"Trigger {name!r} has an empty command")
        return cls(
            name=name,
            prefixes=tuple(prefixes),
            command=tuple(argv),
            timeout=timeout,
        )

    def matching(self, synced: list[str]) -> list[str]:
        """Synced paths that fall under one of this trigger's prefixes."""
        return [
            rel
            for rel in synced
            if any(rel == p or rel.startswith(p) for p in self.prefixes)
        ]


def run_post_sync_triggers(
    synced: list[str],
    triggers: list[PostSyncTrigger],
    local_dir: Path,
) -> list[TriggerOutcome]:
    """Run every trigger whose prefixes match a synced path.

    Triggers that match nothing are not run and not reported.
    """
    outcomes: list[TriggerOutcome] = []
    for trigger in triggers:
        matched = trigger.matching(synced)
        if not matched:
            continue

        argv = [
            arg.replace("{local_dir}", str(local_dir))
            for arg in trigger.command
        ]
        logger.info(
            "Running trigger %s (%d matching files)", trigger.name, len(matched)
        )
        try:
            proc = subprocess.run(
                argv,
                cwd=local_dir,
                capture_output=True,
                text=True,
                timeout=trigger.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(
                "Trigger %s timed out after %gs", trigger.name, trigger.timeout
            )
            outcomes.append(
                TriggerOutcome(
                    name=trigger.name,
                    matched=matched,
                    success=False,
                    message=f"timed out after {trigger.timeout:g}s",
                )
            )
            continue
        except OSError as exc:
            logger.warning("Trigger %s could not start: %s", trigger.name, exc)
            outcomes.append(
                TriggerOutcome(
                    name=trigger.name,
                    matched=matched,
                    success=False,
                    message=str(exc),
                )
            )
            continue

        success = proc.returncode == 0
        detail = (proc.stderr or proc.stdout or "").strip()
        if success:
            logger.info("Trigger %s complete", trigger.name)
        else:
            logger.warning(
                "Trigger %s failed with status %d", trigger.name, proc.returncode
            )
        outcomes.append(
            TriggerOutcome(
                name=trigger.name,
                matched=matched,
                success=success,
                returncode=proc.returncode,
                message=detail.splitlines()[-1][:200] if detail else "",
            )
        )
    return outcomes
