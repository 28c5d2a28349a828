"""
Debug Console UI

Rich rendering for the interactive analysis console: per-query analysis
tables, component health, metrics and the pattern registry.

Author: AI System
Version: 1.0
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from intelligence.base_types import AnalysisResult, ProcessingStrategy

STRATEGY_STYLES = {
    ProcessingStrategy.CACHED_RESPONSE: 'green',
    ProcessingStrategy.MINIMAL_CONTEXT: 'cyan',
    ProcessingStrategy.TECHNICAL_CONTEXT: 'blue',
    ProcessingStrategy.COMPREHENSIVE_ANALYSIS: 'magenta',
    ProcessingStrategy.EMERGENCY_FALLBACK: 'red',
}

HEALTH_STYLES = {
    'healthy': 'green',
    'degraded': 'yellow',
    'error': 'red',
    'critical': 'red',
}


class DebugConsoleUI:
    """Terminal views for the intelligence engine"""

    def __init__(self, verbose: bool = False, console: Optional[Console] = None):
        self.console = console or Console()
        self.verbose = verbose
        self.session_start = datetime.now()
        self.query_count = 0
        self.prompt_session = None

    def _setup_input(self):
        """Enter submits, Alt+Enter inserts a newline"""
        from prompt_toolkit import PromptSession
        from prompt_toolkit.key_binding import KeyBindings
        from prompt_toolkit.keys import Keys

        kb = KeyBindings()

        @kb.add(Keys.Enter)
        def _(event):
            event.current_buffer.validate_and_handle()

        @kb.add(Keys.Escape, Keys.Enter)
        def _(event):
            event.current_buffer.insert_text('\n')

        self.prompt_session = PromptSession(multiline=True, key_bindings=kb)

    async def get_input(self) -> str:
        if self.prompt_session is None:
            self._setup_input()
        from prompt_toolkit.formatted_text import HTML
        try:
            text = await self.prompt_session.prompt_async(HTML('<cyan>Query › </cyan>'))
            return text.strip()
        except (KeyboardInterrupt, EOFError):
            return 'exit'

    # ========================================================================
    # HEADER / FOOTER
    # ========================================================================

    def print_header(self, session_id: str, patterns_loaded: int):
        self.console.print(Rule("[bold cyan]QUERY INTELLIGENCE CONSOLE[/bold cyan]", style="cyan"))
        self.console.print(Panel(
            f"[cyan]Session:[/cyan] [white]{session_id}[/white]\n"
            f"[cyan]Started:[/cyan] [white]{self.session_start.strftime('%I:%M %p')}[/white]\n"
            f"[cyan]Patterns:[/cyan] [white]{patterns_loaded}[/white]\n"
            f"[dim]Commands: /health /stats /patterns /config /last /clear, 'exit' to quit[/dim]",
            border_style="dim",
            box=box.ROUNDED,
            padding=(0, 2)
        ))
        self.console.print()

    def print_goodbye(self):
        goodbye = Text()
        goodbye.append("┃ ", style="bold cyan")
        goodbye.append("Goodbye! ", style="bold white")
        goodbye.append(f"{self.query_count} queries analyzed.", style="dim")
        self.console.print()
        self.console.print(goodbye)
        self.console.print()

    def print_error(self, error: str, traceback_str: Optional[str] = None):
        self.console.print(Panel(
            f"[bold red]Error[/bold red]\n\n{error}",
            title="[red]Error[/red]",
            border_style="red",
            box=box.HEAVY,
            padding=(1, 2)
        ))
        if traceback_str and self.verbose:
            self.console.print(Syntax(traceback_str, "python", theme="monokai", line_numbers=False))

    def print_info(self, message: str):
        self.console.print(f"[dim]{message}[/dim]")

    def print_json(self, payload: str):
        self.console.print_json(payload)

    # ========================================================================
    # ANALYSIS
    # ========================================================================

    def print_analysis(self, result: AnalysisResult):
        """Summary table for one AnalysisResult"""
        self.query_count += 1
        classification = result.classification
        intent = result.intent_analysis
        requirements = result.context_requirements
        perf = result.performance_metrics
        style = STRATEGY_STYLES.get(result.recommended_strategy, 'white')

        table = Table(show_header=False, border_style="dim", box=box.ROUNDED, padding=(0, 1))
        table.add_column("Field", style="cyan", width=22)
        table.add_column("Value", style="white")

        table.add_row("Query ID", result.query_id)
        table.add_row("Strategy", f"[{style}]{result.recommended_strategy.value}[/{style}]")
        table.add_row("Query type", classification.query_type.value)
        table.add_row("Complexity", classification.complexity.value)
        table.add_row("Primary intent", classification.primary_intent.value)
        table.add_row("Confidence", f"{result.confidence_score:.2f}")
        table.add_row("Token estimate", str(result.token_estimate))
        table.add_row("Context level", requirements.level.value)
        table.add_row("Domains", ", ".join(requirements.domains) or "-")
        table.add_row(
            "Intent layers",
            f"surface={intent.surface.type.value} ({intent.surface.confidence:.2f})  "
            f"deep={intent.deep.type.value} ({intent.deep.confidence:.2f})  "
            f"contextual={intent.contextual.type.value} ({intent.contextual.confidence:.2f})"
        )
        if result.pattern_matches:
            table.add_row("Pattern", result.pattern_matches[0].pattern_id)
        if result.context is not None:
            table.add_row(
                "Context",
                f"{len(result.context.selected_messages)}/{result.context.total_considered} messages "
                f"({result.context.selection_strategy}, quality {result.context.quality_score:.2f})"
            )
        if result.fallback_reason:
            table.add_row("Fallback", f"[yellow]{result.fallback_reason}[/yellow]")
        table.add_row(
            "Timing (ms)",
            f"pattern {perf.pattern_matching_time:.1f} | analysis {perf.analysis_time:.1f} | "
            f"context {perf.context_retrieval_time:.1f} | total {perf.total_processing_time:.1f}"
        )
        self.console.print(table)

        if result.fallback_response:
            self.console.print(Panel(
                result.fallback_response,
                title="[green]Cached response[/green]",
                border_style="green",
                box=box.ROUNDED,
                padding=(0, 2)
            ))

        if self.verbose:
            indicators = ", ".join(f"{i.signal}:{i.confidence:.2f}" for i in classification.indicators)
            self.console.print(f"[dim]Indicators: {indicators or 'none'}[/dim]")
        self.console.print()

    # ========================================================================
    # SYSTEM VIEWS
    # ========================================================================

    def print_health(self, health: List[Dict[str, Any]]):
        table = Table(show_header=True, header_style="bold cyan", border_style="dim", box=box.ROUNDED)
        table.add_column("Component", style="white")
        table.add_column("Status")
        table.add_column("State", style="dim")
        table.add_column("Errors", justify="right")
        table.add_column("Success rate", justify="right")
        table.add_column("Last error", style="dim")

        for entry in health:
            style = HEALTH_STYLES.get(entry['status'], 'white')
            table.add_row(
                entry['component_name'],
                f"[{style}]{entry['status']}[/{style}]",
                entry['state'],
                str(entry['error_count']),
                f"{entry['success_rate']:.0%}",
                (entry.get('last_error') or '-')[:40],
            )
        self.console.print(table)
        self.console.print()

    def print_metrics(self, metrics: Dict[str, Any]):
        queries = metrics['queries']
        savings = metrics['savings']
        errors = metrics['errors']

        lines = [
            f"[cyan]Queries:[/cyan] {savings['total_queries']}",
            f"[cyan]Avg processing:[/cyan] {queries.get('avg_processing_time_ms', 0.0):.1f}ms "
            f"(p95 {queries.get('p95_processing_time_ms', 0.0):.1f}ms)",
            f"[cyan]Avg confidence:[/cyan] {queries.get('avg_confidence', 0.0):.2f}",
            f"[cyan]Tokens saved:[/cyan] {savings['total_tokens_saved']} "
            f"({savings['overall_efficiency']:.0%} overall efficiency)",
            f"[cyan]System health:[/cyan] {errors['status']} "
            f"({errors['total_errors']} errors, {len(errors['open_circuits'])} open circuits)",
        ]
        self.console.print(Panel("\n".join(lines), title="[cyan]Metrics[/cyan]",
                                 border_style="dim", box=box.ROUNDED, padding=(0, 2)))

        cache = Table(show_header=True, header_style="bold cyan", border_style="dim", box=box.ROUNDED)
        cache.add_column("Cache layer", style="white")
        cache.add_column("Entries", justify="right")
        cache.add_column("Hit rate", justify="right")
        cache.add_column("Evictions", justify="right")
        for layer, stats in metrics['cache'].items():
            cache.add_row(layer, f"{stats['entries']}/{stats['max_entries']}",
                          f"{stats['hit_rate']:.0%}", str(stats['evictions']))
        self.console.print(cache)
        self.console.print()

    def print_patterns(self, patterns: List[Any], stats: Dict[str, Any]):
        """Registered patterns in match order"""
        table = Table(show_header=True, header_style="bold cyan", border_style="dim", box=box.ROUNDED)
        table.add_column("Pattern", style="white")
        table.add_column("Category", style="dim")
        table.add_column("Tokens", justify="right")
        table.add_column("Hits", justify="right")
        table.add_column("Effectiveness", justify="right")

        for pattern in patterns:
            table.add_row(
                pattern.id,
                pattern.category,
                str(pattern.tokens),
                str(pattern.hit_count),
                f"{pattern.effectiveness:.2f}",
            )
        self.console.print(table)
        self.console.print(
            f"[dim]{stats['total_matches']}/{stats['total_queries']} queries matched, "
            f"{stats['total_tokens_saved']} tokens saved[/dim]"
        )
        self.console.print()
