#!/usr/bin/env python3
"""
ProjectHub Bot Base
───────────────────
Shared logic for ProjectHub Telegram bots.
A bot subclasses BotBase, declares its command schemas and registers handlers.

Components:
    BotConfig       — loads the hub YAML config, resolves token, sets up paths
    ParamValidator   — validates & coerces command parameters against schema
    AuditLogger      — appends structured JSON lines to audit log
    BotBase          — base class with auth, parsing, confirmation, help

Dependencies:
    pip install python-telegram-bot==20.* pyyaml

Usage:
    See hub_bot.py
"""

import json
import logging
import os
import re
import sys
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, Optional

from telegram import BotCommand, Update
from telegram.ext import Application, CommandHandler, ContextTypes

from pkg.projecthub.config import ConfigError, HubConfig
from pkg.projecthub.schema import utc_now

logger = logging.getLogger(__name__)

# Action run on /confirm; may return a reply text
PendingAction = Callable[[], Awaitable[Optional[str]]]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Utilities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def truncate(text: str, max_chars: int = 3500) -> str:
    """Truncate text to fit in a single Telegram message (4096 char limit)."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + f"\n…[truncated, {len(text) - max_chars} chars omitted]"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Exceptions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ValidationError(Exception):
    """Raised when command parameters fail validation."""
    pass


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BotConfig — configuration loader
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BotConfig:
    """
    Loads and exposes config for a single bot.

    Reads projecthub.yaml, resolves the bot token from the environment
    variable named by bot.token_env, sets up the audit path and builds the
    user allowlist.
    """

    def __init__(self, config_path: Optional[str], bot_name: str):
        self.hub = HubConfig.load(config_path)
        self.bot_name = bot_name
        self.bot_cfg = self.hub.bot

        # ── Resolve token from environment ──
        token_env = self.bot_cfg.get("token_env")
        if not token_env:
            raise ConfigError(f"Bot '{bot_name}' has no bot.token_env configured")
        self.token = os.environ.get(token_env)
        if not self.token:
            raise ConfigError(
                f"Environment variable {token_env} is not set.\n"
                f"Set it:  export {token_env}=your_bot_token\n"
                f"Get a token from @BotFather on Telegram."
            )

        # ── Allowlist (numeric Telegram user IDs as strings); empty = anyone ──
        self.allowed_users = self.hub.allowed_users

        # ── Audit log path ──
        audit_path_str = self.bot_cfg.get(
            "audit_log", "~/.local/state/projecthub/audit.jsonl"
        )
        self.audit_log = Path(audit_path_str).expanduser()
        try:
            self.audit_log.parent.mkdir(parents=True, exist_ok=True)
            self.audit_log.touch(exist_ok=True)
        except PermissionError:
            fallback = Path(__file__).parent.parent / "logs" / "audit.jsonl"
            fallback.parent.mkdir(parents=True, exist_ok=True)
            fallback.touch(exist_ok=True)
            self.audit_log = fallback
            logger.warning(
                f"Cannot write to {audit_path_str}, using {fallback}"
            )

    def is_authorized(self, user_id: int) -> bool:
        """Check if a Telegram user ID may use the bot."""
        if not self.allowed_users:
            return True
        return str(user_id) in self.allowed_users


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ParamValidator — input validation & coercion
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ParamValidator:
    """
    Validates and coerces command parameters against a command schema.

    Supports:
        - required / optional with defaults
        - type coercion (string, integer, date)
        - allowed-value lists
        - regex pattern matching
        - min/max bounds for integers
        - rejection of unknown parameters
    """

    def validate(self, params: dict, schema: dict) -> dict:
        """
        Validate and coerce params against schema.

        Returns:
            dict of validated, coerced parameters.

        Raises:
            ValidationError with a user-friendly message on failure.
        """
        result = {}

        for param_name, param_schema in schema.items():
            value = params.get(param_name)
            param_type = param_schema.get("type", "string")
            required = param_schema.get("required", False)
            default = param_schema.get("default")

            # ── Missing value handling ──
            if value is None or value == "":
                if required:
                    raise ValidationError(
                        f"Missing required parameter: {param_name}"
                    )
                if default is not None:
                    result[param_name] = default
                continue

            # ── Type: string ──
            if param_type == "string":
                value = str(value)

                allowed = param_schema.get("allowed")
                if allowed:
                    value = value.lower()
                    if value not in allowed:
                        raise ValidationError(
                            f"Invalid value for {param_name}: '{value}'. "
                            f"Allowed: {', '.join(str(a) for a in allowed)}"
                        )

                pattern = param_schema.get("pattern")
                if pattern and not re.fullmatch(pattern, value):
                    raise ValidationError(
                        f"Invalid format for {param_name}: '{value}'"
                    )

            # ── Type: integer ──
            elif param_type == "integer":
                try:
                    value = int(value)
                except (ValueError, TypeError):
                    raise ValidationError(
                        f"Parameter {param_name} must be an integer, "
                        f"got: '{value}'"
                    )

                min_val = param_schema.get("min")
                max_val = param_schema.get("max")
                if min_val is not None and value < min_val:
                    raise ValidationError(
                        f"Parameter {param_name} must be >= {min_val}, "
                        f"got: {value}"
                    )
                if max_val is not None and value > max_val:
                    raise ValidationError(
                        f"Parameter {param_name} must be <= {max_val}, "
                        f"got: {value}"
                    )

            # ── Type: date (YYYY-MM-DD) ──
            elif param_type == "date":
                try:
                    value = date.fromisoformat(str(value)).isoformat()
                except ValueError:
                    raise ValidationError(
                        f"Parameter {param_name} must be a date (YYYY-MM-DD), "
                        f"got: '{value}'"
                    )

            else:
                raise ValidationError(
                    f"Unknown parameter type in schema: {param_type}"
                )

            result[param_name] = value

        # ── Reject unknown parameters ──
        known = set(schema.keys())
        unknown = set(params.keys()) - known
        if unknown:
            raise ValidationError(
                f"Unknown parameters: {', '.join(sorted(unknown))}"
            )

        return result


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# AuditLogger — structured JSON audit trail
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AuditLogger:
    """
    Appends structured JSON audit entries to a .jsonl file.
    Every data-changing command, confirmation and cancellation is recorded.
    """

    def __init__(self, log_path: Path):
        self.log_path = log_path

    def log(
        self,
        user_id: int,
        username: str,
        bot: str,
        command: str,
        status: str,
        **extra,
    ):
        """Append one audit entry. Extra kwargs are merged in."""
        entry = {
            "ts": utc_now(),
            "user_id": user_id,
            "username": username,
            "bot": bot,
            "command": command,
            "status": status,
        }
        # Merge extras, filtering None values for cleanliness
        for k, v in extra.items():
            if v is not None:
                entry[k] = v

        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except Exception as e:
            logger.error(f"Failed to write audit log: {e}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BotBase — base class for ProjectHub bots
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BotBase:
    """
    Base class for ProjectHub bots.

    Subclass contract:
        1. Set `commands` to {name: {"description", "params", ...}}
        2. Call super().__init__(config_path, bot_name)
        3. Override register_handlers() — call super() then add own handlers
        4. Call self.run() to start the bot

    Provides:
        - User authorization (numeric Telegram ID allowlist)
        - Command argument parsing (`|`-separated positional + named)
        - Parameter validation & coercion
        - Confirmation flow for destructive actions
        - Help command with auto-generated usage
        - Structured audit logging
    """

    commands: dict = {}

    def __init__(self, config_path: Optional[str], bot_name: str):
        self.cfg = BotConfig(config_path, bot_name)
        self.validator = ParamValidator()
        self.audit = AuditLogger(self.cfg.audit_log)

        # user_id → {command, prompt, run}
        self._pending_confirms: dict[int, dict] = {}

        logging.basicConfig(
            level=logging.INFO,
            format=f"%(asctime)s [{bot_name}] %(levelname)s: %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )

    # ──────────────────────────────────────────
    # Auth + parsing helpers
    # ──────────────────────────────────────────

    def _is_authorized(self, update: Update) -> bool:
        """Check if the message sender is in the allowlist."""
        return self.cfg.is_authorized(update.effective_user.id)

    async def _reject_unauthorized(self, update: Update):
        """Log and reply to unauthorized access attempts."""
        user = update.effective_user
        logger.warning(
            f"Unauthorized access attempt: user_id={user.id}, "
            f"username={user.username}, name={user.full_name}"
        )
        self.audit.log(
            user_id=user.id,
            username=self._username(update),
            bot=self.cfg.bot_name,
            command="UNAUTHORIZED",
            status="rejected",
        )
        await update.message.reply_text(
            "⛔ Unauthorized. This incident has been logged."
        )

    def _parse_command_args(self, text: str, command_schema: dict) -> dict:
        """
        Parse command text into a params dict.

        Fields are separated by `|` so they may contain spaces:
            /cmd first | second              → positional, matched to schema key order
            /cmd key1=val1 | key2=val2       → named (key must be in the schema)
            /cmd first | key2=val2           → mixed

        A command with a single parameter takes the whole remainder verbatim.

        Returns:
            dict of param_name → raw string value
        """
        parts = text.split(None, 1)
        rest = parts[1].strip() if len(parts) > 1 else ""  # drop the /command itself
        schema_keys = list(command_schema.keys())
        if not rest or not schema_keys:
            return {}

        if len(schema_keys) == 1:
            key, sep, value = rest.partition("=")
            if sep and key.strip() == schema_keys[0]:
                return {schema_keys[0]: value.strip()}
            return {schema_keys[0]: rest}

        result = {}
        positional_idx = 0

        for part in rest.split("|"):
            part = part.strip()
            key, sep, value = part.partition("=")
            if sep and key.strip() in command_schema:
                # Named param: key=value
                result[key.strip()] = value.strip()
            else:
                # Positional: assign to next schema key in order
                if positional_idx < len(schema_keys):
                    result[schema_keys[positional_idx]] = part
                    positional_idx += 1
                # Extra positional args beyond schema size are silently dropped

        return result

    def _username(self, update: Update) -> str:
        user = update.effective_user
        return user.username or user.full_name or str(user.id)

    async def send_reply(self, update: Update, text: str):
        """Send a handler's reply. Subclasses may decorate the text."""
        await update.message.reply_text(truncate(text))

    # ──────────────────────────────────────────
    # Confirmation handlers
    # ──────────────────────────────────────────

    async def request_confirmation(
        self,
        update: Update,
        command_name: str,
        prompt: str,
        run: PendingAction,
    ):
        """Hold an action until the user replies /confirm (or /cancel)."""
        user = update.effective_user
        self._pending_confirms[user.id] = {
            "command": command_name,
            "prompt": prompt,
            "run": run,
        }
        self.audit.log(
            user_id=user.id,
            username=self._username(update),
            bot=self.cfg.bot_name,
            command=command_name,
            status="awaiting_confirmation",
        )
        await update.message.reply_text(
            f"⚠️ Confirmation required\n\n{prompt}\n\n"
            "Reply /confirm to proceed or /cancel to abort."
        )

    async def handle_confirm(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ):
        """Handle /confirm — run a previously-held action."""
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        user = update.effective_user
        pending = self._pending_confirms.pop(user.id, None)

        if not pending:
            await update.message.reply_text(
                "ℹ️ Nothing pending confirmation."
            )
            return

        self.audit.log(
            user_id=user.id,
            username=self._username(update),
            bot=self.cfg.bot_name,
            command=pending["command"],
            status="confirmed",
        )

        reply = await pending["run"]()
        if reply:
            await self.send_reply(update, reply)

    async def handle_cancel(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ):
        """Handle /cancel — discard a confirmation-held action."""
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        user = update.effective_user
        pending = self._pending_confirms.pop(user.id, None)

        if not pending:
            await update.message.reply_text(
                "ℹ️ Nothing pending to cancel."
            )
            return

        self.audit.log(
            user_id=user.id,
            username=self._username(update),
            bot=self.cfg.bot_name,
            command=pending["command"],
            status="cancelled",
        )

        await update.message.reply_text(
            f"❌ Cancelled /{pending['command']}."
        )

    # ──────────────────────────────────────────
    # Help handler
    # ──────────────────────────────────────────

    def format_help(self) -> str:
        lines = [f"{self.cfg.bot_name} — Commands", ""]

        for cmd_name, cmd_cfg in self.commands.items():
            desc = cmd_cfg.get("description", "")
            params = cmd_cfg.get("params", {})
            param_parts = []

            for p_name, p_schema in params.items():
                required = p_schema.get("required", False)
                default = p_schema.get("default")
                if required:
                    param_parts.append(f"<{p_name}>")
                elif default is not None:
                    param_parts.append(f"[{p_name}={default}]")
                else:
                    param_parts.append(f"[{p_name}]")

            param_str = " | ".join(param_parts)
            lines.append(f"/{cmd_name} {param_str}".rstrip())
            lines.append(f"  ↳ {desc}")

        lines.append("")
        lines.append("/confirm — confirm a pending action")
        lines.append("/cancel — cancel a pending action")
        lines.append("/help — show this message")
        return "\n".join(lines)

    async def handle_help(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ):
        """Handle /help — auto-generate usage from the command schemas."""
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        await update.message.reply_text(truncate(self.format_help()))

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    def register_handlers(self, app: Application):
        """
        Register base command handlers.
        Subclasses MUST call super().register_handlers(app)
        before adding their own handlers.
        """
        app.add_handler(CommandHandler("help", self.handle_help))
        app.add_handler(CommandHandler("start", self.handle_help))
        app.add_handler(CommandHandler("confirm", self.handle_confirm))
        app.add_handler(CommandHandler("cancel", self.handle_cancel))

    async def set_bot_commands(self, app: Application):
        """Set command suggestions in Telegram UI (autocomplete menu)."""
        commands = []
        for cmd_name, cmd_cfg in self.commands.items():
            desc = cmd_cfg.get("description", cmd_name)
            commands.append(BotCommand(cmd_name, desc[:256]))
        commands.append(BotCommand("help", "Show available commands"))
        await app.bot.set_my_commands(commands)

    def run(self):
        """Build Telegram Application, register handlers, and start polling."""
        app = Application.builder().token(self.cfg.token).build()
        self.register_handlers(app)

        async def post_init(application):
            await self.set_bot_commands(application)

        app.post_init = post_init
        logger.info(f"Starting {self.cfg.bot_name}…")
        app.run_polling(drop_pending_updates=True)
