"""Test helpers for building chart checkouts and faking external commands."""


def write_chart(repo_path, name, chart_yaml=None, values_yaml=None):
    """Create charts/<name> with the given Chart.yaml and values.yaml contents."""
    chart_dir = repo_path / "charts" / name
    chart_dir.mkdir(parents=True)
    if chart_yaml is not None:
        (chart_dir / "Chart.yaml").write_text(chart_yaml)
    if values_yaml is not None:
        (chart_dir / "values.yaml").write_text(values_yaml)
    return chart_dir


class FakePopen:
    """Stand-in for subprocess.Popen driven by handler(args) -> (returncode, stdout, stderr).

    A handler may return an exception instance as stdout to have
    communicate()/wait() raise it once.
    """

    handler = None
    calls = []

    def __init__(self, args, stdout=None, stderr=None, **kwargs):
        self.args = args
        FakePopen.calls.append(args)
        self.returncode, self._stdout, self._stderr = FakePopen.handler(args)
        self.killed = False

    def _raise_pending(self):
        if isinstance(self._stdout, BaseException):
            error, self._stdout = self._stdout, b""
            raise error

    def communicate(self, timeout=None):
        self._raise_pending()
        return self._stdout, self._stderr

    def wait(self, timeout=None):
        self._raise_pending()
        return self.returncode

    def kill(self):
        self.killed = True
