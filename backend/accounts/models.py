# accounts/models.py
import secrets
import string

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(length=8):
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class PlayerManager(UserManager):

    def by_referral_code(self, code):
        """Referrer owning ``code`` (case-insensitive), or None."""
        code = (code or "").strip().upper()
        if not code:
            return None
        return self.filter(referral_code=code).first()


class User(AbstractUser):
    """
    A player. ``referred_by`` is fixed at registration and drives both
    the referral dashboard and commission payouts.
    """
    email = models.EmailField(unique=True, db_index=True)

    # Public short id shown in round feeds instead of the pk
    user_uid = models.CharField(max_length=8, unique=True, editable=False, db_index=True)

    referral_code = models.CharField(max_length=12, unique=True, blank=True, null=True, db_index=True)
    referred_by = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="referrals",
    )

    objects = PlayerManager()

    def save(self, *args, **kwargs):
        if not self.user_uid:
            self.user_uid = self._unused_code("user_uid")
        if not self.referral_code:
            self.referral_code = self._unused_code("referral_code")
        super().save(*args, **kwargs)

    @classmethod
    def _unused_code(cls, field_name):
        while True:
            code = generate_code()
            if not cls.objects.filter(**{field_name: code}).exists():
                return code

    def __str__(self):
        return self.email
