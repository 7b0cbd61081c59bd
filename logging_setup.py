# logging_setup.py
import logging
import sys
from pathlib import Path
from typing import Optional


class _ThirdPartyNoiseFilter(logging.Filter):
    """
    コンソール用フィルタ
    - アプリのログはそのまま
    - uvicorn のアクセスログは INFO まで
    - その他のライブラリは WARNING 以上だけ
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(("services.", "repositories.", "routers.", "auth.", "main")):
            return True
        if name.startswith("uvicorn"):
            return record.levelno >= logging.INFO
        return record.levelno >= logging.WARNING


def setup_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """
    ルートロガーを設定する（起動時に1回だけ呼ぶ）
    log_dir を指定した場合はファイルにも全部出す
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # 再設定時にハンドラが重複しないように
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(getattr(logging, level, logging.INFO))
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(ch)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_dir / "api.log"), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    logging.captureWarnings(True)
