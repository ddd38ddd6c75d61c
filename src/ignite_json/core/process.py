from __future__ import annotations

import codecs
import os
import queue
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Iterator

from ignite_json.core.stages import Stage

STDOUT = "stdout"
STDERR = "stderr"
EXIT = "exit"
READ_SIZE = 65536

StreamItem = tuple[str, str]


def spawn_stage_process(stage: Stage, cwd: Path) -> Iterator[StreamItem]:
    """Start ``stage`` and return an iterator over its output.

    The process is started eagerly so spawn failures raise ``OSError`` here.
    Items are ``(channel, text)`` pairs holding whatever the pipe had ready,
    which may be a partial line; the last item is ``("exit", code)``.
    Stdin is inherited so interactive commands (login) can prompt.
    """
    executable = shutil.which(stage.command) or stage.command
    process = subprocess.Popen(  # noqa: S603
        [executable, *stage.args],
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        bufsize=0,
    )
    return _stream(process)


def _stream(process: subprocess.Popen) -> Iterator[StreamItem]:
    items: queue.Queue[StreamItem] = queue.Queue()

    def _drain(pipe, label: str) -> None:
        if pipe is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = pipe.fileno()
        while True:
            data = os.read(fd, READ_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                items.put((label, text))
            if not data:
                break
        pipe.close()

    stdout_thread = threading.Thread(target=_drain, args=(process.stdout, STDOUT), daemon=True)
    stderr_thread = threading.Thread(target=_drain, args=(process.stderr, STDERR), daemon=True)
    stdout_thread.start()
    stderr_thread.start()

    while True:
        try:
            yield items.get(timeout=0.1)
            continue
        except queue.Empty:
            pass
        if process.poll() is not None and items.empty():
            if not stdout_thread.is_alive() and not stderr_thread.is_alive():
                break
    # reader threads are done, drain anything queued after the last poll
    while not items.empty():
        yield items.get_nowait()
    yield (EXIT, str(process.wait()))
