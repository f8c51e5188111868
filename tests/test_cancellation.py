from __future__ import annotations

from pathlib import Path
import signal
import tempfile
import threading
import unittest

from smbuilder.cancellation import CancellationToken, interrupt_handler
from smbuilder.errors import BuildCancelled


class CancellationTokenTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel()
        with self.assertRaises(BuildCancelled) as ctx:
            token.raise_if_cancelled("clone-repo")
        self.assertEqual(ctx.exception.stage, "clone-repo")

        token.reset()
        self.assertFalse(token.cancelled)

    def test_discard_only_while_guarded(self) -> None:
        token = CancellationToken()
        repo = self.root / "repo"
        repo.mkdir()
        (repo / "file").write_text("x")

        self.assertFalse(token.discard_armed_dir())
        with token.guard(repo):
            self.assertEqual(token.armed_dir, repo)
        self.assertIsNone(token.armed_dir)
        self.assertFalse(token.discard_armed_dir())
        self.assertTrue(repo.exists())

        with token.guard(repo):
            self.assertTrue(token.discard_armed_dir())
        self.assertFalse(repo.exists())

    def test_interrupt_handler_cancels_and_restores(self) -> None:
        token = CancellationToken()
        previous = signal.getsignal(signal.SIGINT)

        with interrupt_handler(token):
            signal.raise_signal(signal.SIGINT)

        self.assertTrue(token.cancelled)
        self.assertIs(signal.getsignal(signal.SIGINT), previous)

    def test_interrupt_handler_is_inert_off_the_main_thread(self) -> None:
        token = CancellationToken()
        previous = signal.getsignal(signal.SIGINT)
        seen: list[object] = []

        def worker() -> None:
            with interrupt_handler(token):
                seen.append(signal.getsignal(signal.SIGINT))

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        self.assertEqual(seen, [previous])
        self.assertFalse(token.cancelled)


if __name__ == "__main__":
    unittest.main()
