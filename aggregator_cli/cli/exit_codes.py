"""Exit codes used by the aggregator commands."""


class ExitCode:
    """Process exit codes.

    0 and 1 follow Unix conventions, 130 is the conventional Ctrl+C code.
    Aggregator-specific codes:
    - 2: Configuration error
    - 3: Job queue (Redis) error
    - 4: Database error
    - 5: Network error while checking a source
    - 6: Scheduler operation failed
    - 7: Invalid argument
    - 8: Not found
    """

    SUCCESS = 0
    GENERAL_ERROR = 1

    CONFIGURATION_ERROR = 2
    QUEUE_ERROR = 3
    DATABASE_ERROR = 4
    NETWORK_ERROR = 5
    SCHEDULER_ERROR = 6
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8

    CANCELLED = 130  # 128 + SIGINT

    _DESCRIPTIONS = {
        SUCCESS: "Operation completed successfully",
        GENERAL_ERROR: "An unexpected error occurred",
        CONFIGURATION_ERROR: "Configuration error or invalid config file",
        QUEUE_ERROR: "Job queue backend unavailable or failing",
        DATABASE_ERROR: "Source database error",
        NETWORK_ERROR: "Network error while fetching a source",
        SCHEDULER_ERROR: "Scheduler operation returned a failure",
        INVALID_ARGUMENT: "Invalid command-line argument",
        NOT_FOUND: "Requested resource not found",
        CANCELLED: "Operation cancelled by user",
    }

    @classmethod
    def get_name(cls, code: int) -> str:
        """Get the constant name of an exit code."""
        for name, value in vars(cls).items():
            if name.isupper() and value == code:
                return name
        return f"UNKNOWN({code})"

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get the human-readable description of an exit code."""
        return cls._DESCRIPTIONS.get(code, f"Unknown exit code: {code}")
