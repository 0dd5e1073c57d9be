"""
Operator commands for Firebase users.

  python -m scripts.manage_users create-staff --email a@b.edu --name "A B" --password Secret123 --role organizer
  python -m scripts.manage_users set-role --email a@b.edu --role admin
  python -m scripts.manage_users check-roles --email a@b.edu --email c@d.edu
  python -m scripts.manage_users delete-all-users --yes

Roles live both in the `users` document and in the Auth custom claims;
set-role updates both and check-roles reports any drift between them.
"""

import argparse

from firebase_admin import auth as firebase_auth

import user_repository
from database import db, firebase_app
from schemas import Role

STAFF_ROLES = [Role.ORGANIZER.value, Role.ADMIN.value]


def create_staff(email, name, password, role):
    if user_repository.user_exists_by_email(db, email):
        print("User already exists:", email)
        return 1
    user = user_repository.create_user(db, firebase_auth, name=name, email=email, password=password, role=role)
    print(f"Created {role} {email} (uid {user['uid']})")
    return 0


def set_role(email, role):
    user = user_repository.find_user_by_email(db, email)
    if user is None:
        print("No Firestore profile for", email)
        return 1
    user_repository.update_user(db, firebase_auth, user["uid"], {"role": role})
    print(f"{email}: {user.get('role')} -> {role}")
    return 0


def check_roles(emails):
    mismatches = 0
    for email in emails:
        print("Checking", email)
        try:
            record = firebase_auth.get_user_by_email(email)
        except firebase_auth.UserNotFoundError:
            print("  not found in Firebase Auth")
            mismatches += 1
            continue

        claims = record.custom_claims or {}
        profile = user_repository.find_user_by_id(db, record.uid)
        if profile is None:
            print("  no Firestore document")
            mismatches += 1
        elif claims.get("role") != profile.get("role"):
            print(f"  MISMATCH: claims role={claims.get('role')!r} vs Firestore role={profile.get('role')!r}")
            mismatches += 1
        else:
            print("  ok:", profile.get("role"))
    return 1 if mismatches else 0


def delete_all_users(confirmed):
    if not confirmed:
        print("Refusing to delete every user without --yes")
        return 1

    deleted = 0
    page = firebase_auth.list_users()
    while page:
        for record in page.users:
            user_repository.delete_user(db, firebase_auth, record.uid)
            deleted += 1
        page = page.get_next_page()

    # Profiles whose Auth account was already gone
    for profile in user_repository.list_users(db):
        db.collection("users").document(profile["uid"]).delete()
        deleted += 1

    print("Deleted", deleted, "user(s)")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="Manage Smart Navigator users")
    sub = parser.add_subparsers(dest="command", required=True)

    staff = sub.add_parser("create-staff", help="Create an organizer or admin account")
    staff.add_argument("--email", required=True)
    staff.add_argument("--name", required=True)
    staff.add_argument("--password", required=True)
    staff.add_argument("--role", choices=STAFF_ROLES, default=Role.ORGANIZER.value)

    role = sub.add_parser("set-role", help="Change the role of an existing user")
    role.add_argument("--email", required=True)
    role.add_argument("--role", choices=[r.value for r in Role], required=True)

    check = sub.add_parser("check-roles", help="Compare custom claims with Firestore roles")
    check.add_argument("--email", action="append", required=True)

    wipe = sub.add_parser("delete-all-users", help="Delete every user from Auth and Firestore")
    wipe.add_argument("--yes", action="store_true", help="Confirm the deletion")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    if firebase_app is None or db is None:
        print("Firebase is not configured; set the FIREBASE_* variables")
        return 1

    if args.command == "create-staff":
        return create_staff(args.email.lower(), args.name, args.password, args.role)
    if args.command == "set-role":
        return set_role(args.email.lower(), args.role)
    if args.command == "check-roles":
        return check_roles([e.lower() for e in args.email])
    return delete_all_users(args.yes)


if __name__ == "__main__":
    raise SystemExit(main())
