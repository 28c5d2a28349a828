#!/usr/bin/env python3
"""
Query Intelligence Console - Main Entry Point

Interactive debug console for the intelligence engine. Every line typed is
analyzed against the running conversation and the full AnalysisResult is
rendered, together with component health and savings metrics on demand.

Usage:
    python main.py              # Start the console
    python main.py --verbose    # Show stage timings and indicators
    python main.py --no-cache   # Disable the result cache

Commands:
    /health     Component health feed
    /stats      Metrics, savings and cache statistics
    /patterns   Registered patterns with hit counts
    /config     Effective configuration
    /last       Raw JSON of the previous analysis
    /clear      Forget the conversation history
    exit        Quit

Author: AI System
Version: 1.0
"""

import asyncio
import json
import sys
import traceback
import uuid
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config import Config
from intelligence.base_types import AnalysisResult, ChatContext, ChatMessage
from intelligence.configuration import IntelligenceConfig
from intelligence.engine import IntelligenceEngine
from logger import Logger
from ui.debug_console import DebugConsoleUI

EXIT_COMMANDS = ['exit', 'quit', 'bye', 'q']


async def main():
    """Main entry point"""
    verbose = "--verbose" in sys.argv or "-v" in sys.argv
    no_cache = "--no-cache" in sys.argv

    Logger.set_level('DEBUG' if verbose else Config.LOG_LEVEL)

    config = IntelligenceConfig.from_env()
    config.verbose = verbose
    if no_cache:
        config.enable_result_cache = False

    ui = DebugConsoleUI(verbose=verbose)
    engine = IntelligenceEngine(config)

    try:
        warmed = engine.warm_up()
        context = ChatContext(session_id=uuid.uuid4().hex[:8])

        ui.print_header(context.session_id, len(engine.pattern_matcher.patterns))
        ui.print_info(f"Pattern cache warmed with {warmed} entries")

        await run_interactive_session(engine, ui, context)

    except KeyboardInterrupt:
        ui.print_goodbye()
    except Exception as e:
        ui.print_error(str(e), traceback.format_exc())
    finally:
        engine.shutdown()


async def run_interactive_session(engine: IntelligenceEngine, ui: DebugConsoleUI, context: ChatContext):
    """Read queries until exit, growing the conversation as we go"""

    last_result = None

    while True:
        try:
            user_input = await ui.get_input()

            if user_input.lower() in EXIT_COMMANDS:
                ui.print_goodbye()
                break

            if not user_input:
                continue

            if user_input.startswith('/'):
                handle_command(user_input, engine, ui, context, last_result)
                continue

            result = await engine.analyze_query(user_input, context)
            ui.print_analysis(result)
            last_result = result

            context.messages.append(ChatMessage(id=f"m{len(context.messages) + 1}", content=user_input))
            if result.fallback_response:
                context.messages.append(ChatMessage(
                    id=f"m{len(context.messages) + 1}",
                    content=result.fallback_response,
                    role='assistant',
                ))

        except KeyboardInterrupt:
            ui.print_goodbye()
            break
        except Exception as e:
            ui.print_error(str(e), traceback.format_exc())


def handle_command(command: str, engine: IntelligenceEngine, ui: DebugConsoleUI, context: ChatContext,
                   last_result: Optional[AnalysisResult] = None):
    name = command.split()[0].lower()

    if name == '/health':
        ui.print_health(engine.get_system_health())
    elif name == '/stats':
        ui.print_metrics(engine.get_metrics())
    elif name == '/patterns':
        matcher = engine.pattern_matcher
        ui.print_patterns(list(matcher.patterns.values()), matcher.get_pattern_stats())
    elif name == '/config':
        for key, value in Config.get_config().items():
            ui.print_info(f"{key}: {value}")
    elif name == '/last':
        if last_result is None:
            ui.print_info("No query analyzed yet")
        else:
            ui.print_json(json.dumps(last_result.to_dict(), default=str))
    elif name == '/clear':
        context.messages.clear()
        ui.print_info("Conversation history cleared")
    else:
        ui.print_info(f"Unknown command: {name}")


if __name__ == "__main__":
    asyncio.run(main())
