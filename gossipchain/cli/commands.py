from dataclasses import dataclass
from enum import Enum


class CommandType(Enum):
    LIST_PEERS = "ls p"
    LIST_CHAIN = "ls c"
    CREATE_BLOCK = "create b"


class UnknownCommandError(ValueError):
    pass


@dataclass
class Command:
    type: CommandType
    payload: str = ""


def parse_command(line: str) -> Command:
    """Interpret one line of user input

    `ls p` must match exactly, `ls c` and `create b` are prefixes. For
    `create b` everything after the prefix is the block payload, unchanged.

    Raises:
        UnknownCommandError: for any other line
    """
    line = line.rstrip("\r\n")

    if line == CommandType.LIST_PEERS.value:
        return Command(CommandType.LIST_PEERS)
    if line.startswith(CommandType.LIST_CHAIN.value):
        return Command(CommandType.LIST_CHAIN)
    if line.startswith(CommandType.CREATE_BLOCK.value):
        return Command(CommandType.CREATE_BLOCK, line[len(CommandType.CREATE_BLOCK.value):])

    raise UnknownCommandError(f"unknown command: {line!r}")
