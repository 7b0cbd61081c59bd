# 開発用：既存ユーザーのアクセストークンを発行する
# 使い方: python gen_jwt.py <user_id>
import sys
from uuid import UUID

from auth.security import create_access_token

TOKEN_TTL_MINUTES = 60 * 24  # 24時間有効


def main(argv: list[str]) -> int:
    if len(argv) != 1:
        print("usage: python gen_jwt.py <user_id>", file=sys.stderr)
        return 1

    try:
        user_id = UUID(argv[0])
    except ValueError:
        print(f"invalid user_id: {argv[0]}", file=sys.stderr)
        return 1

    print(create_access_token(user_id, ttl_minutes=TOKEN_TTL_MINUTES))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
