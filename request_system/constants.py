from enum import Enum


class RequestType(str, Enum):
    """The form kinds an employee can submit."""
    PURCHASE_REQUEST = 'purchase_request'
    CASH_ADVANCE = 'cash_advance'
    CASH_ADVANCE_LIQUIDATION = 'cash_advance_liquidation'
    CA_RECEIPT = 'ca_receipt'
    REIMBURSEMENT = 'reimbursement'
    PAYMENT_REQUEST = 'payment_request'
    MAINTENANCE_REPAIR = 'maintenance_repair'
    OVERTIME_APPROVAL = 'overtime_approval'
    LEAVE_APPLICATION = 'leave_application'
    REVOLVING_FUND = 'revolving_fund'
    INTERBRANCH_TRANSFER = 'interbranch_transfer'
    TRANSMITTAL = 'transmittal'
    CREDIT_CARD_ACKNOWLEDGEMENT = 'credit_card_acknowledgement'

    @property
    def label(self):
        return FORM_LABELS[self]

    @classmethod
    def from_slug(cls, slug):
        """Resolves a URL slug ('payment-request' or 'payment_request'). None if unknown."""
        try:
            return cls((slug or '').strip().lower().replace('-', '_'))
        except ValueError:
            return None

    @classmethod
    def from_label(cls, label):
        target = (label or '').strip().lower()
        for request_type, name in FORM_LABELS.items():
            if name.lower() == target:
                return request_type
        return None


class Status(str, Enum):
    """Every status any form type may take."""
    PENDING = 'Pending'
    ENDORSED = 'Endorsed'
    APPROVED = 'Approved'
    DISPATCHED = 'Dispatched'
    RECEIVED = 'Received'
    ACCOMPLISHED = 'Accomplished'
    COMPLETED = 'Completed'
    DECLINED = 'Declined'


class Role(str, Enum):
    """User roles for permissions."""
    STAFF = 'staff'
    ENDORSE = 'endorse'
    APPROVE = 'approve'
    DISPATCH = 'dispatch'
    ACCOMPLISH = 'accomplish'
    ACCOUNTING = 'accounting'
    ADMIN = 'admin'
    VIEWER = 'viewer'

    @classmethod
    def parse(cls, value):
        """Maps a stored role string to a Role. Unknown or empty strings become VIEWER."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            return cls.VIEWER


# Display names, as they appear in a user's form access list
FORM_LABELS = {
    RequestType.PURCHASE_REQUEST: 'Purchase Request',
    RequestType.CASH_ADVANCE: 'Cash Advance Budget Request',
    RequestType.CASH_ADVANCE_LIQUIDATION: 'Cash Advance Liquidation',
    RequestType.CA_RECEIPT: 'CA Receipt',
    RequestType.REIMBURSEMENT: 'Reimbursement',
    RequestType.PAYMENT_REQUEST: 'Payment Request',
    RequestType.MAINTENANCE_REPAIR: 'Maintenance or Repair',
    RequestType.OVERTIME_APPROVAL: 'Overtime Approval',
    RequestType.LEAVE_APPLICATION: 'HR Leave Application',
    RequestType.REVOLVING_FUND: 'Revolving Fund',
    RequestType.INTERBRANCH_TRANSFER: 'Interbranch Transfer Slip',
    RequestType.TRANSMITTAL: 'Transmittal',
    RequestType.CREDIT_CARD_ACKNOWLEDGEMENT: 'Credit Card Acknowledgement Receipt',
}

# Reference code prefixes
CODE_PREFIXES = {
    RequestType.PURCHASE_REQUEST: 'PR',
    RequestType.CASH_ADVANCE: 'CA',
    RequestType.CASH_ADVANCE_LIQUIDATION: 'CAL',
    RequestType.CA_RECEIPT: 'CAR',
    RequestType.REIMBURSEMENT: 'RB',
    RequestType.PAYMENT_REQUEST: 'PRF',
    RequestType.MAINTENANCE_REPAIR: 'MRR',
    RequestType.OVERTIME_APPROVAL: 'OT',
    RequestType.LEAVE_APPLICATION: 'LAF',
    RequestType.REVOLVING_FUND: 'RF',
    RequestType.INTERBRANCH_TRANSFER: 'ITS',
    RequestType.TRANSMITTAL: 'TRF',
    RequestType.CREDIT_CARD_ACKNOWLEDGEMENT: 'CCAR',
}

CODE_SEQUENCE_WIDTH = 6

DECLINE_NOTE_FIELD = 'declined_reason'

# Roles that may read every record for audit and reporting
REPORT_ROLES = frozenset({Role.ADMIN, Role.ACCOUNTING})
