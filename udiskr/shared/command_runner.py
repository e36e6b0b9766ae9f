import shlex
import subprocess


class CommandRunner:
    def __init__(self, config, logger):
        self.logger = logger
        self.open_command = config.get_root_setting(
            ["actions", "open_command"], "xdg-open"
        )

    def open_directory(self, path: str) -> bool:
        """
        Opens ``path`` with the configured command without waiting for it.
        Returns False if the command could not be started.
        """
        cmd = shlex.split(self.open_command) + [path]
        try:
            subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to open dir {path}: {e}")
            return False
        self.logger.debug(f"Opened {path} with {cmd[0]}")
        return True
