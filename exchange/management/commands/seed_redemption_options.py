# Seed Redemption Options Management Command
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from exchange.models import RedemptionOption

DEFAULT_OPTIONS = [
    {
        'title': '10% Off Next Purchase',
        'description': 'Get 10% discount on your next item purchase',
        'points_required': 100,
        'reward_type': RedemptionOption.REWARD_DISCOUNT,
        'reward_value': Decimal('10.00'),
    },
    {
        'title': '20% Off Next Purchase',
        'description': 'Get 20% discount on your next item purchase',
        'points_required': 200,
        'reward_type': RedemptionOption.REWARD_DISCOUNT,
        'reward_value': Decimal('20.00'),
    },
    {
        'title': 'Free Shipping',
        'description': 'Free shipping on your next order',
        'points_required': 50,
        'reward_type': RedemptionOption.REWARD_FREE_SHIPPING,
        'reward_value': Decimal('0.00'),
    },
    {
        'title': '₹500 ReWear Voucher',
        'description': 'Get ₹500 credit to spend on any item',
        'points_required': 250,
        'reward_type': RedemptionOption.REWARD_VOUCHER,
        'reward_value': Decimal('500.00'),
    },
    {
        'title': '₹1000 ReWear Voucher',
        'description': 'Get ₹1000 credit to spend on any item',
        'points_required': 500,
        'reward_type': RedemptionOption.REWARD_VOUCHER,
        'reward_value': Decimal('1000.00'),
    },
    {
        'title': '50% Off Next Purchase',
        'description': 'Get 50% discount on your next item purchase (Premium Reward)',
        'points_required': 750,
        'reward_type': RedemptionOption.REWARD_DISCOUNT,
        'reward_value': Decimal('50.00'),
    },
]


class Command(BaseCommand):
    help = 'Installs the default redemption options. Existing options with the same title are left untouched.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the options that would be created without saving them.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        created = 0

        with transaction.atomic():
            for defaults in DEFAULT_OPTIONS:
                title = defaults['title']
                if RedemptionOption.objects.filter(title=title).exists():
                    self.stdout.write(f'  Skipping existing option: {title}')
                    continue

                if dry_run:
                    self.stdout.write(f'  [DRY-RUN] Would create: {title} ({defaults["points_required"]} points)')
                else:
                    RedemptionOption.objects.create(**defaults)
                    self.stdout.write(f'  Created: {title} ({defaults["points_required"]} points)')
                created += 1

        if dry_run:
            self.stdout.write(self.style.SUCCESS(f'Dry run completed. {created} options would be created.'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Seeded {created} redemption options.'))
