"""CPF / CNPJ validation (check digits, mod 11)."""

from .helpers import only_digits

CNPJ_WEIGHTS_1 = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
CNPJ_WEIGHTS_2 = [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]


def clean_document(document) -> str:
    return only_digits(document)

def _all_same(digits: str) -> bool:
    return len(set(digits)) == 1

def is_valid_cpf(cpf: str) -> bool:
    cpf = only_digits(cpf)
    if len(cpf) != 11 or _all_same(cpf):
        return False

    for size in (9, 10):
        total = sum(int(cpf[i]) * (size + 1 - i) for i in range(size))
        digit = (total * 10) % 11
        if digit == 10:
            digit = 0
        if digit != int(cpf[size]):
            return False
    return True

def is_valid_cnpj(cnpj: str) -> bool:
    cnpj = only_digits(cnpj)
    if len(cnpj) != 14 or _all_same(cnpj):
        return False

    for weights in (CNPJ_WEIGHTS_1, CNPJ_WEIGHTS_2):
        size = len(weights)
        total = sum(int(cnpj[i]) * weights[i] for i in range(size))
        digit = total % 11
        digit = 0 if digit < 2 else 11 - digit
        if digit != int(cnpj[size]):
            return False
    return True

def is_valid_document(document) -> bool:
    digits = clean_document(document)
    if len(digits) == 11:
        return is_valid_cpf(digits)
    if len(digits) == 14:
        return is_valid_cnpj(digits)
    return False

def format_document(document) -> str:
    d = clean_document(document)
    if len(d) == 11:
        return f"{d[:3]}.{d[3:6]}.{d[6:9]}-{d[9:]}"
    if len(d) == 14:
        return f"{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:12]}-{d[12:]}"
    return document or ""
