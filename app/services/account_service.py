"""
Credential store operations: registration, login, profile and password.
"""
import logging
from typing import Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import Conflict, Unauthenticated, ValidationError
from app.models.chain import utcnow
from app.models.user import User
from app.schemas.auth import PasswordChange, ProfileUpdate, RegisterRequest
from app.utils.auth import TokenService, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid email or password"


class AccountService:
    def __init__(self, db: Session, tokens: TokenService):
        self.db = db
        self.tokens = tokens

    def register(self, data: RegisterRequest) -> Tuple[User, str]:
        email = data.email.lower().strip()
        if self.db.query(User).filter(User.email == email).first():
            raise Conflict("This email is already in use")

        if data.username:
            if self._username_taken(data.username):
                raise Conflict("This username is already taken")
            username = data.username
        else:
            username = self._derive_username(email)

        user = User(
            name=data.name,
            email=email,
            hashed_password=hash_password(data.password),
            username=username,
            plan_tier="free",
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Registered user %s (@%s)", user.id, user.username)
        return user, self.tokens.issue(user.id)

    def login(self, email: str, password: str) -> Tuple[User, str]:
        user = self.db.query(User).filter(User.email == email.lower().strip()).first()
        # Same message whether the email or the password is wrong
        if not user or not verify_password(password, user.hashed_password):
            raise Unauthenticated(INVALID_CREDENTIALS, reason="credentials")
        if not user.is_active:
            raise Unauthenticated("Account deactivated", reason="inactive")

        user.last_login = utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user, self.tokens.issue(user.id)

    def update_profile(self, user: User, patch: ProfileUpdate) -> User:
        changes = patch.model_dump(exclude_unset=True)

        username = changes.get("username")
        if username and username != user.username and self._username_taken(username):
            raise Conflict("This username is already taken")

        for field, value in changes.items():
            if value is None and field in ("name", "username"):
                continue
            setattr(user, field, value)

        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user: User, data: PasswordChange) -> str:
        if len(data.new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"The new password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        if not verify_password(data.current_password, user.hashed_password):
            raise Unauthenticated("Current password is incorrect", reason="credentials")

        user.hashed_password = hash_password(data.new_password)
        self.db.commit()
        logger.info("Password changed for user %s", user.id)
        return self.tokens.issue(user.id)

    def _username_taken(self, username: str) -> bool:
        return self.db.query(User.id).filter(User.username == username).first() is not None

    def _derive_username(self, email: str) -> str:
        base = email.split("@")[0]
        candidate = base
        suffix = 1
        while self._username_taken(candidate):
            suffix += 1
            candidate = f"{base}{suffix}"
        return candidate
