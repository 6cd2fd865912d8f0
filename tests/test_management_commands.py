from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from exchange.models import PointsTransaction, RedemptionOption, User
from exchange.services import ledger


class VerifyLedgerCommandTests(TestCase):
    def setUp(self):
        self.alice = User.objects.create_user(
            username='alice', email='alice@test.com', password='password'
        )
        self.bob = User.objects.create_user(
            username='bob', email='bob@test.com', password='password'
        )
        self.carol = User.objects.create_user(
            username='carol', email='carol@test.com', password='password'
        )

        ledger.award_points(self.alice.id, 120, PointsTransaction.TYPE_BONUS, 'Starting balance')
        ledger.deduct_points(self.alice.id, 20, 'Purchase')
        ledger.award_points(self.bob.id, 50, PointsTransaction.TYPE_EARNED, 'Review')
        # carol has no ledger entries and a zero balance

    def _run(self, *args):
        out = StringIO()
        call_command('verify_ledger', *args, stdout=out)
        return out.getvalue()

    def test_consistent_balances(self):
        output = self._run()

        self.assertIn('Processed 3 users total.', output)
        self.assertIn('All balances match the ledger.', output)
        self.assertNotIn('[DRIFT]', output)

    def test_reports_drift_without_fixing(self):
        User.objects.filter(pk=self.alice.pk).update(points_balance=500)
        User.objects.filter(pk=self.carol.pk).update(points_balance=7)

        output = self._run()

        self.assertIn(f'[DRIFT] User {self.alice.id}: balance 500, ledger 100', output)
        self.assertIn(f'[DRIFT] User {self.carol.id}: balance 7, ledger 0', output)
        self.assertIn('2 balances differ from the ledger', output)

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.points_balance, 500)

    def test_fix_repairs_drift(self):
        User.objects.filter(pk=self.bob.pk).update(points_balance=3)

        output = self._run('--fix')

        self.assertIn(f'[FIXED] User {self.bob.id}: balance 3 -> 50', output)
        self.assertIn('Fixed 1 drifted balances.', output)

        self.bob.refresh_from_db()
        self.assertEqual(self.bob.points_balance, 50)
        self.assertEqual(self.bob.points_balance, ledger.ledger_sum(self.bob.id))

        # Fixing writes no ledger entries
        self.assertEqual(PointsTransaction.objects.filter(user=self.bob).count(), 1)

        # A second run finds nothing left to fix
        self.assertIn('All balances match the ledger.', self._run())

    def test_small_batches(self):
        User.objects.filter(pk=self.alice.pk).update(points_balance=1)

        output = self._run('--batch-size', '1')

        self.assertIn('Processed 3 users total.', output)
        self.assertIn(f'[DRIFT] User {self.alice.id}', output)

    def test_invalid_batch_size(self):
        with self.assertRaises(CommandError):
            self._run('--batch-size', '0')


class SeedRedemptionOptionsCommandTests(TestCase):
    def _run(self, *args):
        out = StringIO()
        call_command('seed_redemption_options', *args, stdout=out)
        return out.getvalue()

    def test_seeds_default_catalog(self):
        output = self._run()

        self.assertIn('Seeded 6 redemption options.', output)
        self.assertEqual(RedemptionOption.objects.count(), 6)

        shipping = RedemptionOption.objects.get(title='Free Shipping')
        self.assertEqual(shipping.points_required, 50)
        self.assertEqual(shipping.reward_type, RedemptionOption.REWARD_FREE_SHIPPING)
        self.assertTrue(shipping.is_active)

    def test_second_run_skips_existing(self):
        self._run()

        output = self._run()

        self.assertIn('Skipping existing option: Free Shipping', output)
        self.assertIn('Seeded 0 redemption options.', output)
        self.assertEqual(RedemptionOption.objects.count(), 6)

    def test_dry_run_creates_nothing(self):
        output = self._run('--dry-run')

        self.assertIn('Dry run completed. 6 options would be created.', output)
        self.assertEqual(RedemptionOption.objects.count(), 0)
