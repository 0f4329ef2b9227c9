"""Run summary and catalog report generators."""

import json
from abc import ABC, abstractmethod

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .catalog import DataClassCatalog
from .models import RiskScore, RunSummary

RISK_COLORS = {
    RiskScore.CRITICAL: "red bold",
    RiskScore.HIGH: "red",
    RiskScore.MEDIUM: "yellow",
    RiskScore.LOW: "blue",
    RiskScore.NONE: "dim",
}


class ReportGenerator(ABC):
    """Abstract base class for run report generators."""

    @abstractmethod
    def generate(self, summary: RunSummary) -> str:
        """Generate a report from a run summary.

        Args:
            summary: The detection run to report.

        Returns:
            Formatted report as a string.
        """
        pass


class JSONReporter(ReportGenerator):
    """Generate JSON format reports."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def generate(self, summary: RunSummary) -> str:
        return json.dumps(summary.to_dict(), indent=self.indent)


class TableReporter(ReportGenerator):
    """Generate rich table reports for CLI output."""

    def __init__(self, show_details: bool = True) -> None:
        """Initialize table reporter.

        Args:
            show_details: Also list endpoints that were skipped.
        """
        self.show_details = show_details
        self.console = Console(record=True, force_terminal=True)

    def generate(self, summary: RunSummary) -> str:
        self._render_summary(summary)

        rows = summary.endpoints if self.show_details else [
            e for e in summary.endpoints if e.analyzed or e.error
        ]
        if rows:
            self._render_endpoints(rows)

        return self.console.export_text()

    def _render_summary(self, summary: RunSummary) -> None:
        text = Text()
        text.append(f"Endpoints: {len(summary.endpoints)}\n")
        text.append(f"  Analyzed: {summary.analyzed_count}\n")
        text.append(f"  Skipped (insufficient traces): {summary.skipped_count}\n")
        text.append(f"  Failed: {summary.failed_count}\n", style="red" if summary.failed_count else "")
        text.append(f"Fields updated: {summary.fields_updated}\n")
        text.append(f"Alerts created: {summary.alerts_created}\n")

        self.console.print(Panel(text, title="Sensitive Data Detection", border_style="blue"))

    def _render_endpoints(self, endpoints) -> None:
        table = Table(title="Endpoints", show_header=True, header_style="bold cyan")

        table.add_column("Endpoint", width=40)
        table.add_column("Traces", width=8)
        table.add_column("Fields", width=8)
        table.add_column("Alerts", width=8)
        table.add_column("Risk", width=10)
        table.add_column("Status", width=30)

        for endpoint in endpoints:
            if endpoint.error:
                status = Text(endpoint.error[:30], style="red")
            elif endpoint.analyzed:
                status = Text("analyzed", style="green")
            else:
                status = Text("skipped", style="dim")

            risk = endpoint.risk_score
            table.add_row(
                endpoint.path[-40:] if len(endpoint.path) > 40 else endpoint.path,
                str(endpoint.trace_count),
                str(endpoint.fields_updated),
                str(endpoint.alerts_created),
                Text(risk.value, style=RISK_COLORS[risk]) if risk else Text("-", style="dim"),
                status,
            )

        self.console.print(table)


def render_catalog(catalog: DataClassCatalog) -> str:
    """Render the data-class catalog as a table."""
    console = Console(record=True, force_terminal=True)
    table = Table(title="Data Classes", show_header=True, header_style="bold cyan")

    table.add_column("Name", width=24)
    table.add_column("Severity", width=10)
    table.add_column("Strings only", width=12)
    table.add_column("Validator", width=10)
    table.add_column("Pattern", width=50)

    for data_class in catalog:
        pattern = data_class.pattern or ""
        table.add_row(
            data_class.name,
            Text(data_class.severity.value, style=RISK_COLORS[data_class.severity]),
            "yes" if data_class.string_only else "no",
            "yes" if data_class.validator else "no",
            pattern[:50],
        )

    console.print(table)
    return console.export_text()


def create_reporter(format: str, show_details: bool = True) -> ReportGenerator:
    """Create a reporter for the specified format.

    Raises:
        ValueError: If format is not supported.
    """
    if format == "json":
        return JSONReporter()
    elif format == "table":
        return TableReporter(show_details=show_details)
    else:
        raise ValueError(f"Unsupported format: {format}")
