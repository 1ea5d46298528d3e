"""
flowcore - context and memory engine for the Flow assistant

Turns live activity data (focus sessions, tasks, presets, settings) and a
persisted behavioral history into:
- a bounded, cached system-prompt context for the language model
- structured intelligence (trend, momentum, persona, risks, opportunities)

Components:
    storage/: key/value blob persistence (in-memory, SQLite) and JSON codec
    memory/: long-horizon memory and learned patterns (MemoryStore)
    learning/: BehaviorAnalyzer (pure report generation) and ProfileLearner
    context/: tiered TTL cache, debounced invalidation, prompt assembly

Usage:
    from flowcore.context.assembler import ContextAssembler

    assembler = ContextAssembler.from_config(
        sessions=session_source,
        tasks=task_source,
        presets=preset_source,
        settings=settings_source,
    )
    prompt = assembler.build_context()
"""

from pathlib import Path

__version__ = "0.1.0"

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
ARGS_DIR = PROJECT_ROOT / "args"
CONFIG_PATH = ARGS_DIR / "flowcore.yaml"
