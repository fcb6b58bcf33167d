"""
Concurrent posting into one sequence.

Verifies:
- N simultaneous posts commit exactly the numbers 1..N, no gaps, no reuse
- Posting into different sequences does not interfere
- The audit chain stays intact under concurrency
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from ledger_kernel.domain.document_types import DocumentTypeClass

THREADS = 8

pytestmark = pytest.mark.slow_locks


def _post_concurrently(kernel, jobs):
    barrier = threading.Barrier(len(jobs))

    def run(job):
        org_id, document_type, draft = job
        barrier.wait(timeout=30)
        return kernel.post(org_id, document_type, draft)

    with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
        return list(pool.map(run, jobs))


class TestConcurrentPosting:
    def test_numbers_are_gap_free(self, kernel, org, make_draft):
        jobs = [
            (org.id, DocumentTypeClass.MANUAL_VOUCHER, make_draft(amount=Decimal(i + 1)))
            for i in range(THREADS)
        ]

        results = _post_concurrently(kernel, jobs)

        assert sorted(r.number for r in results) == list(range(1, THREADS + 1))
        assert len({r.guid for r in results}) == THREADS
        numbers = sorted(v.number for v in kernel.list_vouchers(org.id))
        assert numbers == list(range(1, THREADS + 1))

    def test_independent_sequences(self, kernel, org, other_org, make_draft):
        jobs = [
            (org.id, DocumentTypeClass.INVOICE, make_draft()),
            (org.id, DocumentTypeClass.INVOICE, make_draft()),
            (org.id, DocumentTypeClass.CREDIT_NOTE, make_draft()),
            (org.id, DocumentTypeClass.CREDIT_NOTE, make_draft()),
            (other_org.id, DocumentTypeClass.INVOICE, make_draft()),
            (other_org.id, DocumentTypeClass.INVOICE, make_draft()),
        ]

        results = _post_concurrently(kernel, jobs)

        by_sequence: dict = {}
        for (org_id, document_type, _), result in zip(jobs, results):
            by_sequence.setdefault((org_id, document_type), []).append(result.number)
        assert all(sorted(numbers) == [1, 2] for numbers in by_sequence.values())

    def test_audit_chain_intact(self, kernel, org, make_draft):
        jobs = [(org.id, DocumentTypeClass.MANUAL_VOUCHER, make_draft()) for _ in range(THREADS)]
        _post_concurrently(kernel, jobs)

        # One INSERT for the accounting year, one BOOK per voucher
        assert kernel.verify_audit_chain(org.id) == THREADS + 1
