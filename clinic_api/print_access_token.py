"""Print a signed API access token to stdout.

Usage:
    python -m clinic_api.print_access_token [subject] [role]
"""
import sys

from clinic_api.auth.jwt_handler import create_access_token


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if len(args) > 2:
        print("Usage: python -m clinic_api.print_access_token [subject] [role]", file=sys.stderr)
        sys.exit(1)
    subject = args[0] if args else "clinic-staff"
    role = args[1] if len(args) > 1 else "service_role"
    print(create_access_token(subject, role=role))


if __name__ == "__main__":
    main()
