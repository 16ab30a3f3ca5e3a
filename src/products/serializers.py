from rest_framework import serializers

from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    owner = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = Product
        fields = ["id", "name", "sku", "description", "price", "stock", "is_active", "owner", "created_at", "updated_at"]
        read_only_fields = ["id", "owner", "created_at", "updated_at"]


__all__ = ["ProductSerializer"]
