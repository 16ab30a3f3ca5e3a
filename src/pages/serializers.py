"""Serializers for Page CRUD."""

from django.utils.text import slugify
from rest_framework import serializers

from .models import Page


class PageSerializer(serializers.ModelSerializer):
    owner = serializers.PrimaryKeyRelatedField(read_only=True)
    slug = serializers.SlugField(max_length=255, required=False)

    class Meta:
        """Ownership and timestamps are server-controlled."""
        model = Page
        fields = ["id", "title", "slug", "content", "status", "owner", "created_at", "updated_at"]
        read_only_fields = ["id", "owner", "created_at", "updated_at"]

    def validate(self, attrs):
        if not attrs.get("slug") and attrs.get("title") and self.instance is None:
            attrs["slug"] = slugify(attrs["title"])[:255]
        if self.instance is None and not attrs.get("slug"):
            raise serializers.ValidationError({"slug": ["A slug or a title that produces one is required."]})
        slug = attrs.get("slug")
        if slug:
            clash = Page.objects.filter(slug=slug)
            if self.instance is not None:
                clash = clash.exclude(pk=self.instance.pk)
            if clash.exists():
                raise serializers.ValidationError({"slug": ["A page with this slug already exists."]})
        return attrs


__all__ = ["PageSerializer"]
