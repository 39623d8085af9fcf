"""Centralized message constants for error messages, log templates, and user feedback."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Track Validation Errors
    EMPTY_TRACK_ID = "Track ID cannot be empty"

    # Command Errors
    EMPTY_QUERY = "Please provide a search query!"
    NO_RESULTS = "No results found! Try with a different search term."
    UNKNOWN_COMMAND = "Unknown command: {name}"
    INTERNAL_ERROR = "An error occurred while running that command! Please try again later."
    NOTHING_PLAYING = "Nothing is playing!"
    NO_ACTIVE_PLAYER = "No active player found!"
    NO_CURRENT_TRACK = "No track is currently playing!"
    QUEUE_EMPTY_SHOW = "Queue is empty! Add some tracks with the play command."
    QUEUE_EMPTY_SHUFFLE = "Not enough tracks in queue to shuffle!"
    QUEUE_ALREADY_EMPTY = "Queue is already empty!"
    INVALID_LOOP_MODE = "Loop mode must be one of: off, track, queue"
    QUEUE_FULL = "The queue is full! (limit: {limit} tracks)"

    # Playback Errors
    ALREADY_PAUSED = "The player is already paused!"
    ALREADY_PLAYING = "The player is already playing!"
    TOO_MANY_FAILURES = "Stopped after {count} tracks in a row failed to play."
    NODE_LOST = "Lost connection to the audio node and no other node is available."

    # Node Errors
    NODE_NOT_READY = "Node {node_id} has no session yet"
    NODE_UNKNOWN = "Unknown audio node: {node_id}"
    NODE_REQUEST_FAILED = "Node {node_id} rejected {method} {path}: HTTP {status}"
    NODE_UNREACHABLE = "Node {node_id} is unreachable: {error}"

    # Voice Errors
    VOICE_TIMEOUT = "Timed out connecting to voice channel {channel_id}"
    VOICE_CLOSED_EARLY = "Voice connection closed before it was ready"
    VOICE_GUILD_NOT_FOUND = "Guild {guild_id} not found"
    VOICE_CHANNEL_NOT_FOUND = "Voice channel {channel_id} not found"

    # Configuration Errors
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"
    DISCORD_TOKEN_REQUIRED = "DISCORD__TOKEN environment variable is required"
    NO_NODES_CONFIGURED = "No Lavalink nodes configured (LAVALINK__NODES)"
    BOT_NOT_INITIALIZED = "Bot not initialized. Call set_bot() first."
    CONTAINER_NOT_FOUND = "Container not found on bot instance"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Session Lifecycle
    SESSION_CREATED = "Created session for guild %s on node %s"
    SESSION_EXISTS = "Session already exists for guild %s"
    SESSION_DESTROYED = "Destroyed session for guild %s (%s)"
    SESSION_NOT_FOUND = "No session found for guild %s"
    SESSION_STALE_RESULT = "Discarding result for guild %s: session no longer active"
    SESSION_CREATE_FAILED = "Failed to create session for guild %s: %r"
    SESSION_MIGRATED = "Migrated guild %s from node %s to node %s"
    SESSION_MIGRATION_FAILED = "No healthy node for guild %s after node %s dropped"

    # Playback Operations
    PLAYBACK_STARTED = "Started playing '%s' in guild %s"
    PLAYBACK_PAUSED = "Paused playback in guild %s"
    PLAYBACK_RESUMED = "Resumed playback in guild %s"
    PLAYBACK_VOLUME = "Set volume to %s in guild %s"
    PLAYBACK_PLAY_REJECTED = "Node rejected play of '%s' in guild %s: %s"
    PLAYBACK_FAILURE_CAP = "Guild %s hit %s consecutive track failures, halting auto-advance"
    PLAYBACK_SKIP_ALREADY_APPLIED = "Skip in guild %s already satisfied by a concurrent advance"

    # Track Events
    TRACK_STARTED = "Track started: %s in guild %s"
    TRACK_ENDED = "Track ended in guild %s (reason: %s)"
    TRACK_END_STALE = "Ignoring stale track end in guild %s (reason: %s)"
    TRACK_FAILED = "Track '%s' failed in guild %s (%s consecutive)"
    TRACK_EXCEPTION = "Track exception in guild %s: %s (severity %s)"
    TRACK_STUCK = "Track stuck in guild %s for %sms"

    # Queue Operations
    QUEUE_EMPTY = "Queue exhausted in guild %s"
    QUEUE_ENQUEUED = "Enqueued track '%s' at position %s in guild %s"
    QUEUE_ENQUEUED_MANY = "Enqueued %s tracks in guild %s"
    QUEUE_REMOVED = "Removed track '%s' from queue in guild %s"
    QUEUE_CLEARED = "Cleared %s tracks from queue in guild %s"
    QUEUE_SHUFFLED = "Shuffled queue in guild %s"
    LOOP_MODE_CHANGED = "Loop mode changed to %s in guild %s"

    # Resolution
    RESOLVE_STARTED = "Resolving %r on node %s"
    RESOLVE_FAILED = "Failed to resolve %r: %s"
    RESOLVE_NO_NODE = "No node available to resolve %r"

    # Node Pool
    NODE_REGISTERED = "Registered audio node %s (%s)"
    NODE_DEREGISTERED = "Deregistered audio node %s"
    NODE_CONNECTED = "Node \"%s\" connected."
    NODE_DISCONNECTED = "Node \"%s\" disconnected, %s session(s) to migrate"
    NODE_ERROR = "Node \"%s\" encountered an error: %s."
    NODE_ASSIGNED = "Assigned guild %s to node %s (load %s)"
    NODE_UNREACHABLE = "Node %s unreachable during %s, treating as disconnect"

    # Lavalink Transport
    LAVALINK_CONNECTING = "Connecting to Lavalink node %s at %s"
    LAVALINK_READY = "Lavalink node %s ready (session=%s, resumed=%s)"
    LAVALINK_SOCKET_CLOSED = "Lavalink socket for node %s closed (code=%s)"
    LAVALINK_RECONNECT = "Reconnecting to node %s in %.1fs (attempt %s/%s)"
    LAVALINK_RECONNECT_GAVE_UP = "Giving up reconnecting to node %s after %s attempts"
    LAVALINK_RESTART = "Restarting event stream of node %s after it was marked unavailable"
    LAVALINK_UNKNOWN_OP = "Unknown Lavalink op from node %s: %r"
    LAVALINK_BAD_PAYLOAD = "Malformed Lavalink payload from node %s"
    LAVALINK_VOICE_CLOSED = "Discord voice socket closed in guild %s (code=%s, reason=%s)"

    # Voice
    VOICE_CONNECTED = "Voice connected in guild %s (channel %s)"
    VOICE_SERVER_MOVED = "Voice server changed in guild %s (endpoint %s)"
    VOICE_DISCONNECTED = "Voice disconnected in guild %s"
    VOICE_CLEANUP_ERROR = "Error during voice cleanup in guild %s"

    # Dispatcher
    COMMAND_RECEIVED = "Command %s from user %s in guild %s"
    COMMAND_REJECTED = "Command %s rejected in guild %s: %s"
    COMMAND_CRASHED = "Unhandled error in command %s (guild %s)"

    # Events
    EVENT_HANDLER_ERROR = "Error in handler for %s: %s"
    FEEDBACK_SEND_FAILED = "Failed to send feedback to channel %s"

    # Application Lifecycle
    BOT_STARTING = "Starting playback bot in {environment} mode"
    BOT_SETUP = "Setting up bot..."
    BOT_CONTAINER_INITIALIZED = "Container initialized successfully"
    BOT_CONTAINER_INIT_FAILED = "Failed to initialize container: %s"
    BOT_SETUP_COMPLETE = "Bot setup complete"
    BOT_STARTING_RUN = "Starting bot..."
    BOT_STOPPED = "Bot stopped successfully"
    BOT_KEYBOARD_INTERRUPT = "Received keyboard interrupt, shutting down..."
    BOT_FATAL_ERROR = "Fatal error: %s"
    BOT_SHUTTING_DOWN = "Shutting down bot..."
    BOT_SHUTDOWN_TIMEOUT = "Graceful shutdown exceeded %ss"
    BOT_CONTAINER_SHUTDOWN = "Container shutdown complete"
    BOT_CONTAINER_SHUTDOWN_ERROR = "Error during container shutdown: %s"
    BOT_SHUTDOWN_COMPLETE = "Bot shutdown complete"
    BOT_READY = "Logged in as %s (%s)"
    BOT_COG_LOADED = "Loaded cog: %s"
    BOT_COG_LOAD_FAILED = "Failed to load cog %s: %s"


class FeedbackMessages:
    """User-facing strings attached to structured feedback."""

    ADDED_TO_QUEUE = "Added **{title}** to the queue at position {position}"
    ADDED_PLAYLIST = "Added **{count}** tracks from **{name}** to the queue"
    NOW_PLAYING = "Now playing: **{title}**"
    SKIPPED = "Skipped the current track!"
    STOPPED = "Stopped the music and cleared the queue!"
    PAUSED = "Paused the music!"
    RESUMED = "Resumed the music!"
    VOLUME_SET = "Set volume to {volume}%"
    SHUFFLED = "Shuffled the queue!"
    LOOP_SET = "{state} loop mode!"
    LOOP_TRACK = "Looping the current track!"
    REMOVED = "Removed **{title}** from the queue!"
    CLEARED = "Cleared the queue!"
    QUEUE_ENDED = "Queue has ended. Leaving the voice channel."
    QUEUE = "Queue"
    STATUS = "Player status"
    HELP = "Available commands"


COMMAND_HELP: tuple[tuple[str, str], ...] = (
    ("play <query>", "Play a song or playlist"),
    ("pause", "Pause the current track"),
    ("resume", "Resume the current track"),
    ("skip", "Skip the current track"),
    ("stop", "Stop playback and clear queue"),
    ("queue", "Show the current queue"),
    ("nowplaying", "Show current track info"),
    ("volume <0-100>", "Adjust player volume"),
    ("shuffle", "Shuffle the current queue"),
    ("loop [off|track|queue]", "Toggle queue loop mode"),
    ("remove <position>", "Remove a track from queue"),
    ("clear", "Clear the current queue"),
    ("status", "Show player status"),
    ("help", "Show this help message"),
)
"""Command catalogue shown by ``help``."""
