"""
Base classes for Node War Tools.

This module provides base classes used throughout the package.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from datetime import datetime
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class NodeWarTool(ABC):
    """Base class for all node war tools."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the tool.

        Args:
            config: Optional configuration dictionary.
        """
        self.config = config or {}
        self.setup_logging()

    @staticmethod
    def add_standard_arguments(parser):
        """
        Add standard arguments that should be consistent across all command-line tools.

        Args:
            parser: The ArgumentParser instance to add arguments to
        """
        parser.add_argument("--profile", default=None,
                          help="Configuration profile to use (default: use default profile)")
        parser.add_argument("--console", action="store_true",
                          help="Log detailed output summary (in addition to regular logging)")

    @staticmethod
    def load_config(profile: Optional[str] = None) -> Dict[str, Any]:
        """
        Load configuration from a specified profile.

        Args:
            profile: Name of the profile to load. If None, uses the default profile.

        Returns:
            The configuration dictionary.
        """
        from config.config import Config

        config_obj = Config(profile=profile)
        config_data = config_obj.get()

        log_level = config_data.get('general', {}).get('log_level', 'INFO').upper()

        # Reset any existing handlers to avoid duplicated logs
        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)

        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))

        logging.debug(f"Logging initialized with level: {log_level}")

        return config_data

    def setup_logging(self, level: int = logging.INFO):
        """
        Set up logging for this tool.

        Args:
            level: The logging level to use.
        """
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        logging.basicConfig(level=level, format=log_format)

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: The configuration key, in dot notation.
            default: Default value if the key is not found.

        Returns:
            The configuration value, or the default if not found.
        """
        parts = key.split('.')
        value = self.config

        for part in parts:
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    @abstractmethod
    def run(self) -> Any:
        """
        Run the tool. Must be implemented by subclasses.

        Returns:
            The result of running the tool.
        """
        pass


class FileBasedTool(NodeWarTool):
    """Base class for tools that work with files."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the file-based tool.

        Args:
            config: Optional configuration dictionary.
        """
        super().__init__(config)
        self.log_dir = None
        self.output_dir = None
        self.data_dir = None

    def initialize_directories(self):
        """
        Initialize common directories from configuration.
        Sets up log, output and data directories.
        """
        self.log_dir = self.get_config('general.log_download_path', 'logs')
        self.output_dir = self.get_config('general.output_path', 'output')
        self.data_dir = self.get_config('general.data_dir', 'data')

        for directory in (self.output_dir, self.data_dir):
            if directory:
                resolved = self.resolve_path(directory)
                os.makedirs(resolved, exist_ok=True)
                logger.debug(f"Directory ready: {resolved}")

    def resolve_path(self, path: str) -> str:
        """
        Resolve a path, expanding user paths and environment variables.

        Args:
            path: The path to resolve.

        Returns:
            The resolved absolute path.
        """
        expanded_path = os.path.expanduser(os.path.expandvars(path))
        return os.path.abspath(expanded_path)

    def ensure_dir(self, directory: str) -> str:
        """
        Ensure a directory exists, create it if it doesn't.

        Args:
            directory: The directory path.

        Returns:
            The absolute path to the directory.
        """
        path = Path(self.resolve_path(directory))
        os.makedirs(path, exist_ok=True)
        return str(path)

    def _in_output_dir(self, output_path: str) -> str:
        """Place a relative path under the output directory unless it is already there."""
        if self.output_dir:
            output_dir_norm = os.path.normpath(self.output_dir)
            output_path_norm = os.path.normpath(output_path)
            if not os.path.isabs(output_path) and not output_path_norm.startswith(output_dir_norm):
                output_path = os.path.join(self.output_dir, output_path)
        return self.resolve_path(output_path)

    def read_text(self, file_path: str) -> str:
        """
        Read a UTF-8 text file, ignoring undecodable bytes.

        Args:
            file_path: Path to the file.

        Returns:
            The file contents.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        resolved_path = self.resolve_path(file_path)
        if not os.path.isfile(resolved_path):
            raise FileNotFoundError(f"File does not exist: {resolved_path}")

        file_size = os.path.getsize(resolved_path)
        if file_size > 100 * 1024 * 1024:  # 100MB
            logger.warning(f"Large file detected ({file_size / 1024 / 1024:.1f}MB): {resolved_path}")

        with open(resolved_path, 'r', encoding='utf-8', errors='ignore') as f:
            return f.read()

    def write_csv(self, data_rows: List, output_path: str, headers: List[str] = None) -> str:
        """
        Write data to a CSV file.

        Args:
            data_rows: List of dictionaries (or sequences) with data to write
            output_path: Path to the output CSV file
            headers: Optional list of header columns (if None, uses keys from first row)

        Returns:
            Absolute path to the created CSV file
        """
        import csv

        resolved_path = self._in_output_dir(output_path)
        logger.debug(f"Writing CSV to {resolved_path}")

        os.makedirs(os.path.dirname(resolved_path), exist_ok=True)

        if not data_rows:
            logger.warning("No data to write to CSV.")
            with open(resolved_path, "w", newline="", encoding="utf-8") as f:
                if headers:
                    writer = csv.writer(f)
                    writer.writerow(headers)
            logger.info(f"Empty CSV file created at {resolved_path}")
            return resolved_path

        if headers is None and isinstance(data_rows[0], dict):
            headers = list(data_rows[0].keys())

        with open(resolved_path, "w", newline="", encoding="utf-8") as f:
            if isinstance(data_rows[0], dict) and headers:
                writer = csv.DictWriter(f, fieldnames=headers)
                writer.writeheader()
                writer.writerows(data_rows)
            else:
                writer = csv.writer(f)
                if headers:
                    writer.writerow(headers)
                writer.writerows(data_rows)

        logger.info(f"Results written to {resolved_path}")
        return resolved_path

    def generate_timestamped_filename(self, base_name: str, extension: str, prefix: str = "", suffix: str = "") -> str:
        """
        Generate a filename with a timestamp.

        Args:
            base_name: The base name for the file
            extension: File extension (without the dot)
            prefix: Optional prefix to add before the timestamp
            suffix: Optional suffix to add after the timestamp

        Returns:
            A filename in the format: base_name_prefix_YYYYMMDD_HHMMSS_suffix.extension
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        prefix_str = f"{prefix}_" if prefix else ""
        suffix_str = f"_{suffix}" if suffix else ""

        filename = f"{base_name}_{prefix_str}{timestamp}{suffix_str}.{extension}"

        # Clean up double underscores or other formatting issues
        filename = filename.replace("__", "_").replace("__", "_")

        return filename


class JSONTool(FileBasedTool):
    """Base class for tools that work with JSON files."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the JSON tool.

        Args:
            config: Optional configuration dictionary.
        """
        super().__init__(config)
        self.initialize_directories()

    def read_json(self, file_path: str) -> Any:
        """
        Read a JSON file.

        Args:
            file_path: Path to the JSON file.

        Returns:
            The parsed JSON content.

        Raises:
            json.JSONDecodeError: If the file contains invalid JSON.
            FileNotFoundError: If the file doesn't exist.
        """
        resolved_path = self.resolve_path(file_path)
        logger.debug(f"Reading JSON file: {resolved_path}")

        with open(resolved_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def write_json(self, data: Any, file_path: str, indent: int = 2) -> str:
        """
        Write data to a JSON file.

        The file is written to a temporary sibling first and then moved
        into place, so readers never see a half-written store.

        Args:
            data: The data to write.
            file_path: Path to the output file.
            indent: Number of spaces for indentation (default: 2).

        Returns:
            The absolute path to the created file.

        Raises:
            IOError: If the file cannot be written.
        """
        resolved_path = self._in_output_dir(file_path)

        os.makedirs(os.path.dirname(resolved_path), exist_ok=True)

        tmp_path = resolved_path + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, resolved_path)

        logger.debug(f"JSON data written to {resolved_path}")
        return resolved_path
