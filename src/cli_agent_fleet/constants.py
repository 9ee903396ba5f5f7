"""Constants for CLI Agent Fleet.

This module defines the coordination file layout shared by every phase, the
default loop limits, and provider settings.

The fleet drives a CLI coding agent (Claude Code, Codex) through a series of
role phases (Architect, Builder, Tester, Deployer, Bug-Fixer). Phases never
talk to each other directly: they read and write the Markdown files listed
below inside the project's coordination directory.
"""

from pathlib import Path

from cli_agent_fleet.models.provider import ProviderType

# =============================================================================
# Provider Configuration
# =============================================================================
# Available CLI providers - derived from the ProviderType enum for consistency
PROVIDERS = [p.value for p in ProviderType]

# Default provider used when --provider flag is not specified
DEFAULT_PROVIDER = ProviderType.CLAUDE_CODE.value

# Skill documents live at <SKILLS_DIR>/<skill>/SKILL.md
DEFAULT_SKILLS_DIR = Path.home() / ".claude" / "skills"
SKILL_FILENAME = "SKILL.md"

# =============================================================================
# Coordination Directory Layout
# =============================================================================
# Directory (relative to the project) holding all shared phase state
COORDINATION_DIR_NAME = "_coordination"

ARCHITECTURE_FILE = "ARCHITECTURE.md"
NEXT_ACTIONS_FILE = "NEXT_ACTIONS.md"
BUILD_LOG_FILE = "BUILD_LOG.md"
TEST_REPORT_FILE = "TEST_REPORT.md"
DEPLOYMENT_LOG_FILE = "DEPLOYMENT_LOG.md"
BUGFIX_LOG_FILE = "BUGFIX_LOG.md"
STATUS_DASHBOARD_FILE = "status-dashboard.md"
TEST_QUEUE_FILE = "test-queue.md"
BOOTSTRAP_MARKER_FILE = ".bootstrap_complete"
CONFIG_FILE_NAME = "fleet.json"

# Background tester output
TEST_RESULTS_DIR = "test-results"
LATEST_RESULT_FILE = f"{TEST_RESULTS_DIR}/latest.md"
BUGS_FILE = f"{TEST_RESULTS_DIR}/bugs-found.md"
HISTORY_LOG_FILE = f"{TEST_RESULTS_DIR}/history.log"

# Locks: <resource>.lock files are flock'ed by the orchestrator, files.lock is
# the Bug-Fixer's human-readable claim list
LOCKS_DIR = "locks"
FILES_LOCK_FILE = f"{LOCKS_DIR}/files.lock"

# Per-phase output of background (non-interactive) sessions
SESSION_LOG_DIR = "logs"

# Resource name guarding every Tester / Bug-Fixer session
TESTER_LOCK = "tester"

# Logs offered by the round loop's "view logs" sub-menu, in menu order
ROUND_LOG_FILES = [
    ARCHITECTURE_FILE,
    BUILD_LOG_FILE,
    TEST_REPORT_FILE,
    DEPLOYMENT_LOG_FILE,
    NEXT_ACTIONS_FILE,
]

# =============================================================================
# Loop Configuration
# =============================================================================
# Build -> Test -> Deploy rounds before the development loop stops
MAX_ROUNDS = 10

# Feature rounds before the interactive feature loop stops
MAX_FEATURE_ROUNDS = 20

# Seconds between build log checks in the background poll loop
POLL_INTERVAL = 10

# Seconds to wait for the Bug-Fixer when the operator chooses to wait
CRITICAL_WAIT_SECONDS = 30

# Deployer writes this line to DEPLOYMENT_LOG.md on success
DEPLOYMENT_SUCCESS_MARKER = "DEPLOYMENT SUCCESSFUL"

# Lines shown from coordination files in summaries
ARCHITECTURE_PREVIEW_LINES = 30
NEXT_ACTIONS_BOOTSTRAP_PREVIEW_LINES = 20
NEXT_ACTIONS_SUMMARY_LINES = 25
LATEST_RESULT_PREVIEW_LINES = 5
CRITICAL_PREVIEW_COUNT = 3

# =============================================================================
# Environment
# =============================================================================
# Prefix of environment variables read by the config loader
ENV_PREFIX = "FLEET_"

# Removed from child environments so the agent CLI does not refuse to start
# when the fleet itself runs inside an agent session
NESTED_SESSION_ENV_VARS = ["CLAUDECODE"]
