"""
Report generation for forecasts, lever rankings and decision comparisons.

Produces formatted reports in multiple formats (text, JSON, Markdown).
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, List, Optional, Sequence, TYPE_CHECKING

from decision_forecast.metrics.collapse import CollapseAnalyzer

if TYPE_CHECKING:
    from decision_forecast.decision.builder import BranchReport
    from decision_forecast.engine.monte_carlo import SimulationResult
    from decision_forecast.metrics.sensitivity import LeverSuggestion


class ReportFormat(Enum):
    """Available report formats."""
    TEXT = auto()
    JSON = auto()
    MARKDOWN = auto()

    @classmethod
    def parse(cls, name: str) -> "ReportFormat":
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown format: {name}") from None


class ReportSubject(ABC):
    """Something a Reporter can render."""

    title: str = "Report"

    @abstractmethod
    def describe(self) -> str:
        """Plain text rendering."""
        pass

    @abstractmethod
    def to_dict(self) -> Any:
        """JSON-serializable rendering."""
        pass

    def markdown_lines(self) -> List[str]:
        return ["```", self.describe(), "```"]


class SimulationSummary(ReportSubject):
    """Headline numbers of one Monte Carlo batch."""

    title = "Forecast"

    def __init__(self, result: "SimulationResult"):
        self.result = result
        self.collapse = CollapseAnalyzer(result).compute_metrics()

    def describe(self) -> str:
        r = self.result
        p = r.score_percentiles
        events = r.risk_events
        lines = [
            f"Forecast ({r.runs} runs, {r.horizon_months:g} months, dt={r.dt_days:g} days):",
            f"  Success ratio: {r.success_ratio:.1%}",
            f"  Score p10/p50/p90: {p.p10:.1f} / {p.p50:.1f} / {p.p90:.1f}",
            f"  Ending capital mean: {r.ending_capital.mean:.1f}",
            f"  Ending resilience mean: {r.ending_resilience.mean:.1f}",
            f"  Stress break worlds: {events.stress_breaks.worlds_with_event}",
            f"  Drawdown worlds: {events.drawdowns_over_20.worlds_with_event}",
            f"  Black swan worlds: {events.black_swans.worlds_with_event}",
            f"  Levers to explore: {', '.join(lever.value for lever in r.top_levers)}",
            "",
            self.collapse.describe(),
        ]
        return "\n".join(lines)

    def to_dict(self) -> Any:
        data = self.result.to_dict()
        data["collapse"] = self.collapse.to_dict()
        return data

    def markdown_lines(self) -> List[str]:
        r = self.result
        p = r.score_percentiles
        return [
            "| Metric | Value |",
            "|--------|-------|",
            f"| Runs | {r.runs} |",
            f"| Success Ratio | {r.success_ratio:.1%} |",
            f"| Score p10 | {p.p10:.1f} |",
            f"| Score p50 | {p.p50:.1f} |",
            f"| Score p90 | {p.p90:.1f} |",
            f"| Collapse Risk | {self.collapse.collapse_risk:.1%} |",
        ]


class LeverReport(ReportSubject):
    """Ranked lever suggestions."""

    title = "Lever Sensitivity"

    def __init__(self, levers: Sequence["LeverSuggestion"]):
        self.levers = list(levers)

    def describe(self) -> str:
        if not self.levers:
            return "No lever suggestions."
        lines = ["Top levers:"]
        for rank, lever in enumerate(self.levers, start=1):
            lines.append(
                f"  {rank}. {lever.lever.value}: score={lever.score:.2f} "
                f"success={lever.success_delta:+d} drawdown={lever.drawdown_delta:+d} "
                f"cost={lever.cost:.2f} patch={lever.patch}"
            )
        return "\n".join(lines)

    def to_dict(self) -> Any:
        return [lever.to_dict() for lever in self.levers]

    def markdown_lines(self) -> List[str]:
        lines = [
            "| Lever | Score | Success Δ | Drawdown Δ | Cost |",
            "|-------|-------|-----------|------------|------|",
        ]
        for lever in self.levers:
            lines.append(
                f"| {lever.lever.value} | {lever.score:.2f} | {lever.success_delta:+d} "
                f"| {lever.drawdown_delta:+d} | {lever.cost:.2f} |"
            )
        return lines


class DecisionReport(ReportSubject):
    """Side-by-side decision branches."""

    title = "Decision Comparison"

    def __init__(self, branches: Sequence["BranchReport"]):
        self.branches = list(branches)

    def describe(self) -> str:
        if not self.branches:
            return "No branches evaluated."
        lines = ["Decision branches:"]
        for branch in self.branches:
            marker = " [dominant]" if branch.dominant else ""
            utility = ", ".join(f"{k}={v:.2f}" for k, v in branch.expected_utility.items())
            lines.append(f"  {branch.label}{marker}")
            lines.append(f"    Expected utility: {utility}")
            lines.append(f"    Score p10/p50/p90: {branch.p10:.1f} / {branch.p50:.1f} / {branch.p90:.1f}")
            lines.append(f"    Collapse risk: {branch.collapse_risk:.1%}")
            lines.append(f"    Constraints satisfied: {'yes' if branch.constraints_satisfied else 'no'}")
            for reason in branch.reasons:
                lines.append(f"    - {reason}")
            if branch.next_actions:
                lines.append(f"    Next: {'; '.join(branch.next_actions)}")
        return "\n".join(lines)

    def to_dict(self) -> Any:
        return [branch.to_dict() for branch in self.branches]

    def markdown_lines(self) -> List[str]:
        lines = [
            "| Branch | p50 | Collapse Risk | Constraints | Dominant |",
            "|--------|-----|---------------|-------------|----------|",
        ]
        for branch in self.branches:
            lines.append(
                f"| {branch.label} | {branch.p50:.1f} | {branch.collapse_risk:.1%} "
                f"| {'yes' if branch.constraints_satisfied else 'no'} "
                f"| {'**yes**' if branch.dominant else 'no'} |"
            )
        return lines


class Reporter:
    """
    Generates formatted reports from a report subject.
    """

    def __init__(self, subject: ReportSubject):
        """
        Initialize reporter.

        Args:
            subject: What to report on
        """
        self.subject = subject

    def generate(self, format: ReportFormat = ReportFormat.TEXT) -> str:
        """
        Generate report in specified format.

        Args:
            format: Output format

        Returns:
            Formatted report string
        """
        if format == ReportFormat.TEXT:
            return self.subject.describe()
        elif format == ReportFormat.JSON:
            return json.dumps(self.subject.to_dict(), indent=2, default=str)
        elif format == ReportFormat.MARKDOWN:
            return self._generate_markdown()
        else:
            raise ValueError(f"Unknown format: {format}")

    def _generate_markdown(self) -> str:
        lines = [f"# {self.subject.title}", ""]
        lines.extend(self.subject.markdown_lines())
        return "\n".join(lines)

    def save(self, filepath: str, format: Optional[ReportFormat] = None) -> None:
        """
        Save report to file.

        Args:
            filepath: Output file path
            format: Format (inferred from extension if not specified)
        """
        if format is None:
            if filepath.endswith('.json'):
                format = ReportFormat.JSON
            elif filepath.endswith('.md'):
                format = ReportFormat.MARKDOWN
            else:
                format = ReportFormat.TEXT

        content = self.generate(format)

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(content)
