"""
Tests for the figures response document
"""

from datetime import date

from loan_engine.schemas import LoanFiguresResponse


class TestLoanFiguresResponse:
    """Test rendering of engine figures"""

    def test_single_loan_document(self, engine, make_loan, processing_fee):
        figures = engine.calculate(make_loan(plan_overrides={'fees': (processing_fee,)}), date(2024, 1, 1))
        response = LoanFiguresResponse.from_figures(figures)

        assert response.loan_id == "LOAN-001"
        assert response.calculated_on == "2024-01-01"
        assert response.principal == "10000.00"
        assert response.disbursal.amount == "9764.00"
        assert response.interest.amount == "150.00"
        assert response.interest.rate_per_day == "0.001"
        assert response.total.repayable == "10150.00"
        assert response.fees.deduct_from_disbursal[0].base_amount == "200.00"
        assert response.fees.deduct_from_disbursal[0].gst_amount == "36.00"
        assert response.fees.add_to_total == []
        assert response.due_date_source == "generated"
        assert not response.best_effort

    def test_installments_rendered_as_strings(self, engine, make_loan):
        figures = engine.calculate(make_loan(), date(2024, 1, 1))
        item = LoanFiguresResponse.from_figures(figures).repayment.schedule[0]

        assert item.number == 1
        assert item.due_date == "2024-01-16"
        assert item.amount == "10150.00"
        assert item.penalty_total == "0.00"
        assert item.status == "pending"

    def test_warnings_mark_best_effort(self, engine, make_loan):
        loan = make_loan(processed_at=date(2024, 1, 1))
        response = LoanFiguresResponse.from_figures(engine.calculate(loan, date(2024, 1, 5)))

        assert response.due_date_source == "recomputed"
        assert response.best_effort
        assert response.warnings

    def test_json_has_no_floats(self, engine, make_loan):
        figures = engine.calculate(make_loan(processed_at=date(2024, 1, 1), due_dates=[date(2024, 1, 16)]),
                                   date(2024, 2, 5))
        data = LoanFiguresResponse.from_figures(figures).model_dump()

        assert data['penalty'] == {'base': "750.00", 'gst': "135.00", 'total': "885.00"}
        assert data['currency'] == "INR"

        def walk(value):
            if isinstance(value, dict):
                for inner in value.values():
                    walk(inner)
            elif isinstance(value, list):
                for inner in value:
                    walk(inner)
            else:
                assert not isinstance(value, float)

        walk(data)
