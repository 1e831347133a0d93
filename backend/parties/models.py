from django.db import models
from backend.core.models import User


class Distributor(models.Model):
    """Distributor company profile, one per distributor login"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='distributor_profile')
    company_name = models.CharField(max_length=200)
    distributor_code = models.CharField(max_length=50, unique=True)
    contact_person = models.CharField(max_length=200)
    contact_no = models.CharField(max_length=20)
    address = models.TextField()
    region = models.CharField(max_length=100, db_index=True)
    gst_no = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.company_name} ({self.distributor_code})"

    class Meta:
        db_table = 'distributors'
        ordering = ['distributor_code']
