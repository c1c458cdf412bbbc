import json
import os
import pathlib
from typing import Dict, Iterable, Mapping, Tuple


def _token_key_order(item: Tuple[str, str]):
    key = item[0]
    return (0, int(key), key) if key.isdecimal() else (1, 0, key)


class ResultStore:
    """
    JSON file mapping decimal token ids to image URLs. The file is the output of a run
    and the checkpoint for resuming it.

    Saving rewrites the whole file through a temporary file and an atomic replace, so
    the file on disk is always the last complete snapshot.
    """

    def __init__(self, result_file: pathlib.Path) -> None:
        self.__result_file = result_file

    @property
    def path(self) -> pathlib.Path:
        return self.__result_file

    def ensure_directory(self) -> None:
        self.__result_file.parent.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.__result_file.exists()

    def load(self) -> Dict[str, str]:
        try:
            with open(self.__result_file, "r") as file:
                results = json.load(file)
        except FileNotFoundError:
            return {}
        if not isinstance(results, dict):
            raise ValueError(f"Result file {self.__result_file} does not contain a JSON object")
        return results

    def save(self, results: Mapping[str, str]) -> None:
        ordered = dict(sorted(results.items(), key=_token_key_order))
        temp_file = self.__result_file.with_name(f".{self.__result_file.name}.tmp")
        with open(temp_file, "w") as file:
            json.dump(ordered, file, separators=(",", ":"))
        os.replace(temp_file, self.__result_file)


def write_failed_ids(failed_file: pathlib.Path, token_ids: Iterable[int]) -> None:
    """Write the sorted token ids left unresolved by a run as a JSON list"""
    failed_file.parent.mkdir(parents=True, exist_ok=True)
    with open(failed_file, "w") as file:
        json.dump(sorted(token_ids), file)
