# Verify Ledger Management Command
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Sum

from exchange.models import PointsTransaction
from exchange.services import ledger

User = get_user_model()


class Command(BaseCommand):
    help = 'Compares every cached points balance with the sum of its ledger entries.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Reset drifted balances to their ledger sum.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Number of users loaded per query.',
        )

    def handle(self, *args, **options):
        fix = options['fix']
        batch_size = options['batch_size']
        if batch_size <= 0:
            raise CommandError('--batch-size must be a positive integer.')

        self.stdout.write('Verifying points balances against the ledger...')

        sums = dict(
            PointsTransaction.objects.order_by().values('user_id')
            .annotate(total=Sum('amount'))
            .values_list('user_id', 'total')
        )

        users = User.objects.only('id', 'points_balance').order_by('id').iterator(chunk_size=batch_size)
        checked = 0
        drifted = 0

        for user in users:
            checked += 1
            if checked % 100 == 0:
                self.stdout.write(f'Processed {checked} users...')

            expected = sums.get(user.id) or 0
            if user.points_balance == expected:
                continue

            drifted += 1
            if fix:
                # Re-read under the row lock so concurrent writes are not clobbered
                cached, expected = ledger.reconcile_balance(user.id, fix=True)
                self.stdout.write(f'  [FIXED] User {user.id}: balance {cached} -> {expected}')
            else:
                self.stdout.write(f'  [DRIFT] User {user.id}: balance {user.points_balance}, ledger {expected}')

        self.stdout.write(f'Processed {checked} users total.')

        if drifted == 0:
            self.stdout.write(self.style.SUCCESS('All balances match the ledger.'))
        elif fix:
            self.stdout.write(self.style.SUCCESS(f'Fixed {drifted} drifted balances.'))
        else:
            self.stdout.write(self.style.WARNING(
                f'{drifted} balances differ from the ledger. Run with --fix to repair them.'
            ))
