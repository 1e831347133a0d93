from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models


class Category(models.Model):
    """Jewelry categories (Rings, Pendants, ...)"""
    name = models.CharField(max_length=200, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Material(models.Model):
    """Base metal group (Gold, Silver) with its minimum order weight"""
    name = models.CharField(max_length=100, unique=True)
    min_order_weight = models.FloatField(default=0.0, validators=[MinValueValidator(0.0)],
                                         help_text='Minimum accumulated gross weight (grams) per order, 0 to disable')
    is_visible = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'materials'
        ordering = ['name']


class Metal(models.Model):
    """Weighable variant of a material (18K Gold, 22K Gold, 925 Silver)

    Order items reference metals by name, not by key: renaming a metal detaches
    historical items from it and their weights fall back to ratio 1.
    """
    BASE_RATIO = 1.0

    name = models.CharField(max_length=100, unique=True)
    material = models.ForeignKey(Material, on_delete=models.PROTECT, related_name='metals')
    conversion_ratio = models.FloatField(default=1.0, validators=[MinValueValidator(0.0)],
                                         help_text='Weight multiplier against the material base metal')
    purity = models.FloatField(default=0.0, validators=[MinValueValidator(0.0), MaxValueValidator(100.0)],
                               help_text='Purity percentage, 0 when not applicable')
    is_visible = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.material.name})"

    @property
    def is_base(self):
        return self.conversion_ratio == self.BASE_RATIO

    class Meta:
        db_table = 'metals'
        ordering = ['material__name', 'name']


class Size(models.Model):
    """Selectable sizes, grouped by category label"""
    name = models.CharField(max_length=50)
    category = models.CharField(max_length=100, default='General')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.category})"

    class Meta:
        db_table = 'sizes'
        ordering = ['category', 'name']
        unique_together = [['name', 'category']]


class Product(models.Model):
    """Catalogue entry; base weight is measured against the base (ratio 1.0) metal"""
    VISIBILITY_ALL = 'ALL'
    VISIBILITY_RESTRICTED = 'RESTRICTED'
    VISIBILITY_CHOICES = [
        (VISIBILITY_ALL, 'All distributors'),
        (VISIBILITY_RESTRICTED, 'Selected distributors'),
    ]

    model_no = models.CharField(max_length=100, unique=True, db_index=True)
    title = models.CharField(max_length=200, blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='products')
    base_weight = models.FloatField(validators=[MinValueValidator(0.0)])
    main_image = models.URLField(max_length=500)
    additional_images = models.JSONField(default=list, blank=True)
    cad_file = models.URLField(max_length=500, blank=True)
    tags = models.JSONField(default=list, blank=True)
    visibility = models.CharField(max_length=20, choices=VISIBILITY_CHOICES, default=VISIBILITY_ALL)
    allowed_distributors = models.ManyToManyField('parties.Distributor', blank=True, related_name='visible_products')
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.model_no} - {self.title}" if self.title else self.model_no

    def is_visible_to(self, distributor):
        if not self.is_active:
            return False
        if self.visibility == self.VISIBILITY_ALL:
            return True
        return self.allowed_distributors.filter(pk=distributor.pk).exists()

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']
