"""
Open an inventory record whenever a product is created.
"""
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Product
from .services import open_record


@receiver(post_save, sender=Product, dispatch_uid='inventory_open_record')
def create_inventory_for_product(sender, instance, created, raw=False, **kwargs):
    if created and not raw:
        open_record(instance, user=instance.owner)
