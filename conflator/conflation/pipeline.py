"""
Conflation pipeline

Runs every registered pass over an affected batch, in registry order:

  1. Detection (MissingConnectionDetector) writes dupe / conn tags
  2. Consumers realize the tags (splice, duplicate merge)
  3. Address / building merging
  4. Simplification of over-noded ways
  5. Removal of the upstream "already conflated" marker

Edits of passes that allow undo are bundled into one undoable step; the
others are collected into a permanent step.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from loguru import logger

from ..commands import Command, SequenceCommand, UndoRedoHandler
from ..config import ConflationConfig, get_config
from ..data import Dataset, OsmPrimitive, OsmRelation, OsmWay
from ..models import ConflationReport, PassSummary
from .base import ConflationCommand, ConflationContext
from .decisions import AcceptAllDecisionProvider, DecisionProvider, DecisionSession
from .registry import ConflationRegistry, default_registry
from .upload import UploadGuard


@dataclass
class ConflationResult:
    """Outcome of one pipeline run"""
    permanent: Optional[Command]
    undoable: Optional[Command]
    fixes: int
    report: ConflationReport
    passes: List[ConflationCommand] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.report.cancelled


class ConflationPipeline:
    """
    Conflate a batch of new primitives into a dataset

    Usage:
        pipeline = ConflationPipeline(dataset)
        result = pipeline.run(new_primitives)
        print(result.fixes)
    """

    DESCRIPTION = "Create connections from conflation data"

    def __init__(
        self,
        dataset: Dataset,
        config: Optional[ConflationConfig] = None,
        provider: Optional[DecisionProvider] = None,
        registry: Optional[ConflationRegistry] = None,
        undo_handler: Optional[UndoRedoHandler] = None,
    ):
        self.dataset = dataset
        self.config = config or get_config()
        self.provider = provider or AcceptAllDecisionProvider()
        self.registry = registry or default_registry(self.config)
        self.undo_handler = undo_handler
        self.session = DecisionSession(self.provider)

    @staticmethod
    def expand_affected(primitives: Iterable[OsmPrimitive]) -> List[OsmPrimitive]:
        """The batch plus the nodes of its ways and the members of its relations"""
        seen = {}

        def visit(prim: OsmPrimitive):
            if id(prim) in seen:
                return
            seen[id(prim)] = prim
            if isinstance(prim, OsmWay):
                for node in prim.nodes:
                    visit(node)
            elif isinstance(prim, OsmRelation):
                for member in prim.member_primitives():
                    visit(member)

        for primitive in primitives:
            visit(primitive)
        return sorted(seen.values(), key=lambda p: p.sort_key())

    def run(self, affected: Iterable[OsmPrimitive]) -> ConflationResult:
        """
        Run all registered passes over ``affected``

        Args:
            affected: Primitives under consideration (usually the new data)

        Returns:
            ConflationResult with the executed permanent / undoable steps
        """
        batch = self.expand_affected(affected)
        logger.info(f"Conflating {len(batch)} primitive(s) in '{self.dataset.name}'")

        context = ConflationContext(
            config=self.config,
            decisions=self.session,
            directive_keys=frozenset(self.registry.non_publishable_keys()),
            undo_handler=self.undo_handler,
        )
        report = ConflationReport(affected=len(batch))
        permanent: List[Command] = []
        undoable: List[Command] = []
        passes: List[ConflationCommand] = []
        ran: List[str] = []
        fixes = 0

        for descriptor in self.registry.descriptors():
            command = descriptor.builder(self.dataset, context)
            blocked_by = [name for name in ran if name in command.conflicts_with()]
            if blocked_by:
                logger.info(f"Skipping {descriptor.name}: conflicts with {', '.join(blocked_by)}")
                report.passes.append(PassSummary(
                    name=descriptor.name,
                    key=descriptor.key,
                    considered=0,
                    edits=0,
                    allows_undo=descriptor.allows_undo,
                    skipped_conflict=True,
                ))
                continue

            built = command.build(batch)
            if built is not None and not command.execute():
                logger.warning(f"{descriptor.name}: edits could not be applied")
                built = None
            passes.append(command)
            report.passes.append(PassSummary(
                name=descriptor.name,
                key=descriptor.key,
                considered=len(command.affected),
                edits=command.edit_count if built is not None else 0,
                allows_undo=command.allows_undo(),
            ))
            if built is None:
                continue

            ran.append(descriptor.name)
            fixes += command.edit_count
            if command.allows_undo():
                undoable.append(built)
            else:
                permanent.append(built)

        permanent_command = SequenceCommand.wrap_if_needed(self.DESCRIPTION, permanent)
        undoable_command = SequenceCommand.wrap_if_needed(self.DESCRIPTION, undoable)
        if self.undo_handler is not None and undoable_command is not None:
            self.undo_handler.add(undoable_command)

        report.fixes = fixes
        report.cancelled = self.session.cancelled
        report.leftovers = UploadGuard(self.registry).find_leftovers(self.dataset)
        if report.cancelled:
            logger.warning(f"Conflation cancelled, {fixes} fix(es) kept")
        else:
            logger.info(f"Conflation finished with {fixes} fix(es)")

        return ConflationResult(
            permanent=permanent_command,
            undoable=undoable_command,
            fixes=fixes,
            report=report,
            passes=passes,
        )

    def save_report(self, result: ConflationResult, output_path: str) -> str:
        """Save the conflation report to a JSON file"""
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.report.model_dump(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved conflation report to {output_path}")
        return output_path
