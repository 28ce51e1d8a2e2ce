import os
import tempfile


def atomic_write(path: str, data: bytes) -> None:
    '''
    Write data to path through a sibling temp file and os.replace,
    so readers never observe a half-written file.
    '''
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=os.path.basename(path))
    try:
        with os.fdopen(fd, 'wb') as file:
            file.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
