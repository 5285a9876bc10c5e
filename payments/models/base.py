from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing common timestamp fields.

    Queryset ``update()`` calls bypass ``auto_now``, so services that move
    money with ``F()`` expressions set ``updated_at`` themselves.
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]
