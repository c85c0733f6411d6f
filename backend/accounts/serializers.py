from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=6)
    referral_code_input = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ("id", "user_uid", "username", "email", "password", "referral_code", "referral_code_input")
        read_only_fields = ("user_uid", "referral_code")
        extra_kwargs = {"email": {"required": True}}

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("This email is already registered.")
        return value.lower()

    def validate_referral_code_input(self, value):
        if not value.strip():
            return None
        referrer = User.objects.by_referral_code(value)
        if referrer is None:
            raise serializers.ValidationError("Unknown referral code.")
        return referrer

    def create(self, validated_data):
        referrer = validated_data.pop("referral_code_input", None)
        password = validated_data.pop("password")

        user = User(**validated_data)
        user.set_password(password)
        user.referred_by = referrer
        user.save()
        return user


class ProfileSerializer(serializers.ModelSerializer):
    referred_by = serializers.SlugRelatedField(slug_field="username", read_only=True)

    class Meta:
        model = User
        fields = ("id", "user_uid", "username", "email", "referral_code", "referred_by")
        read_only_fields = fields
