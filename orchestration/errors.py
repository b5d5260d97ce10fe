class JobExecutionError(Exception):
    """A scheduled job failed as a whole (for example its source could not be fetched at all)."""
    def __init__(self, job_name: str, message: str):
        super().__init__(f"{job_name}: {message}")
        self.job_name = job_name
        self.message = message


class ConfigurationError(ValueError):
    """A service configuration update was rejected; nothing was changed."""
    pass
