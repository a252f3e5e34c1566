from typing import Any, Dict

LEVEL_COLORS = {
    "CRITICAL": "red",
    "DEBUG": "white",
    "ERROR": "magenta",
    "INFO": "blue",
    "SUCCESS": "green",
    "TRACE": "dim",
    "WARNING": "yellow",
}


class CustomLogFormat:
    """Render Loguru records for the console and file sinks.

    Both sinks share the same `time | level | location - message` layout; the
    file sink appends the bound context (recipient, path, client) so one
    recipient's activity can be followed across requests.
    """

    def __init__(self, record: Dict[str, Any]) -> None:
        self.record = record
        self.time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-4]
        self.level = record["level"].name
        self.color = LEVEL_COLORS.get(self.level, "white")

        function = record["function"]
        if function == "<module>":
            function = "\\<module\\>"
        self.location = f"{record['file']}:{function}:{record['line']}"

    def _line(self, suffix: str = "") -> str:
        # Loguru parses the result as a template with markup
        message = (
            self.record["message"]
            .replace("{", "{{")
            .replace("}", "}}")
            .replace("<", "\\<")
        )
        suffix = suffix.replace("{", "{{").replace("}", "}}")

        return (
            f"<dim><bold>{self.time_str}</bold></dim> | "
            f"<level><{self.color}>{self.level:8}</{self.color}></level> | "
            f"<cyan>{self.location}</cyan> - "
            f"<level><{self.color}>{message}</{self.color}></level>"
            f"{suffix}\n"
        )

    def log_console_format(self) -> str:
        """Format the log record for console output.

        Returns
        -------
        str
            Timestamp, colored level, file location and message.
        """
        request_id = self.record["extra"].get("request_id")
        suffix = f" <dim>[{request_id}]</dim>" if request_id else ""
        return self._line(suffix)

    def log_file_format(self) -> str:
        """Format the log record for file output, with the bound context.

        Returns
        -------
        str
            Console layout followed by `key=value` pairs of the log context.
        """
        context_parts = [
            f"{key}={value}".replace("<", "\\<")
            for key, value in self.record["extra"].items()
            if key not in ("request_id", "target")
        ]
        suffix = f"<bold><dim> | {', '.join(context_parts)}</dim></bold>" if context_parts else ""
        return self._line(suffix)
