"""Tests for individual catalog detectors."""

import pytest

from anchor_sentinel.analysis import build_model
from anchor_sentinel.detectors import CATALOG, get_detector
from anchor_sentinel.detectors.base import UNKNOWN_NOTE
from anchor_sentinel.report import Severity

from conftest import (
    FEE_CHECKED_SOURCE,
    POOL_SOURCE,
    RELAY_SOURCE,
    UNKNOWN_CONSTRAINT_SOURCE,
    VAULT_FIXED_SOURCE,
    VAULT_SOURCE,
)

STATE_SOURCE = '''
use anchor_lang::prelude::*;

#[program]
pub mod registry {
    use super::*;

    pub fn update(ctx: Context<Update>, count: u64) -> Result<()> {
        for i in 0..count {
            msg!("{}", i);
        }
        let share = ctx.accounts.state.total / 10 * 3;
        ctx.accounts.state.share = share;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Update<'info> {
    #[account(mut, seeds = [b"state"])]
    pub state: Account<'info, State>,
    pub authority: Signer<'info>,
}

#[account]
pub struct State {
    pub total: u64,
    pub share: u64,
}
'''


def detect(detector_id, model):
    return get_detector(detector_id).detect(model)


def test_catalog_ids_are_unique_and_sorted():
    ids = [d.id for d in CATALOG]
    assert len(ids) == len(set(ids)) == 22
    assert ids == sorted(ids)


def test_get_detector_is_case_insensitive():
    assert get_detector("v001").id == "V001"
    assert get_detector("V999") is None


class TestMissingSigner:
    def test_unsigned_owner_is_reported(self, vault_model):
        findings = detect("V001", vault_model)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.location.program == "vault_program"
        assert finding.location.instruction == "withdraw"
        assert finding.location.context == "Withdraw"
        assert finding.location.field == "owner"
        assert finding.confidence == 1.0
        assert "signer" in finding.message

    def test_signer_constraint_clears_it(self):
        assert detect("V001", build_model(VAULT_FIXED_SOURCE)) == []

    def test_has_one_binding_clears_it(self, fee_model):
        assert detect("V001", fee_model) == []

    def test_unknown_constraint_lowers_confidence(self):
        findings = detect("V001", build_model(UNKNOWN_CONSTRAINT_SOURCE))
        assert len(findings) == 1
        assert findings[0].confidence == 0.5
        assert findings[0].message.endswith(UNKNOWN_NOTE)


class TestSeedCollision:
    def test_prefix_seeds_collide(self, pool_model):
        findings = detect("V004", pool_model)
        assert len(findings) == 1
        location = findings[0].location
        assert location.context == "CreateTaggedPool"
        assert location.field == "pool"
        assert location.instruction is None
        assert "CreatePool.pool" in findings[0].message

    def test_distinct_prefixes_do_not_collide(self):
        source = POOL_SOURCE.replace(
            'seeds = [b"pool", mint.key().as_ref(), extra.as_bytes()]',
            'seeds = [b"tagged_pool", mint.key().as_ref(), extra.as_bytes()]',
        )
        assert detect("V004", build_model(source)) == []


class TestIntegerOverflow:
    def test_unchecked_add_on_arguments(self, fee_model):
        findings = detect("V003", fee_model)
        assert len(findings) == 1
        assert findings[0].snippet == "amount+fee"
        assert findings[0].location.instruction == "charge"
        assert findings[0].location.site_kind == "arithmetic"

    def test_checked_add_is_clean(self):
        model = build_model(FEE_CHECKED_SOURCE)
        ix = model.programs[0].get_instruction("charge")
        assert [site.method for site in ix.arithmetic] == ["checked_add"]
        assert detect("V003", model) == []

    def test_prior_bound_suppresses(self):
        source = FEE_CHECKED_SOURCE.replace(
            "let total = amount.checked_add(fee).ok_or(ErrorCode::Overflow)?;",
            "require!(amount < 1_000_000 && fee < 1_000, ErrorCode::TooLarge);\n        let total = amount + fee;",
        )
        assert detect("V003", build_model(source)) == []


class TestUnsafeCpi:
    def test_program_from_unchecked_account(self, relay_model):
        findings = detect("V006", relay_model)
        assert len(findings) == 1
        assert findings[0].location.site_kind == "cpi"
        assert "target_program" in findings[0].message
        assert findings[0].confidence == 1.0


class TestBodyPatterns:
    @pytest.fixture
    def state_model(self):
        return build_model(STATE_SOURCE, "programs/registry/src/lib.rs")

    def test_missing_bump(self, state_model):
        findings = detect("V008", state_model)
        assert len(findings) == 1
        assert findings[0].location.field == "state"

    def test_unbounded_loop(self, state_model):
        findings = detect("V019", state_model)
        assert len(findings) == 1
        assert "0..count" in findings[0].message

    def test_precision_loss(self, state_model):
        findings = detect("V026", state_model)
        assert [f.snippet for f in findings] == ["ctx.accounts.state.total/10*3"]

    def test_bounded_loop_is_clean(self):
        source = STATE_SOURCE.replace(
            "for i in 0..count {",
            "require!(count <= 16, ErrorCode::TooMany);\n        for i in 0..count {",
        )
        assert detect("V019", build_model(source)) == []


class TestNonBoundingGuards:
    def test_nonzero_check_does_not_bound_overflow(self):
        source = FEE_CHECKED_SOURCE.replace(
            "let total = amount.checked_add(fee).ok_or(ErrorCode::Overflow)?;",
            "require!(amount != 0 && fee != 0, ErrorCode::Zero);\n        let total = amount + fee;",
        )
        findings = detect("V003", build_model(source))
        assert [f.snippet for f in findings] == ["amount+fee"]

    def test_bounding_one_operand_leaves_the_other(self):
        source = FEE_CHECKED_SOURCE.replace(
            "let total = amount.checked_add(fee).ok_or(ErrorCode::Overflow)?;",
            "if amount > MAX_AMOUNT {\n            return Err(ErrorCode::TooLarge.into());\n        }\n"
            "        let total = amount + fee;",
        )
        findings = detect("V003", build_model(source))
        assert len(findings) == 1
        assert "uses `fee` from" in findings[0].message


# Pays out tokens, then records the payout
TREASURY_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_spl::token::{self, Token, TokenAccount, Transfer};

#[program]
pub mod treasury {
    use super::*;

    pub fn payout(ctx: Context<Payout>, amount: u64) -> Result<()> {
        let cpi_accounts = Transfer {
            from: ctx.accounts.treasury.to_account_info(),
            to: ctx.accounts.recipient.to_account_info(),
            authority: ctx.accounts.authority.to_account_info(),
        };
        let cpi_ctx = CpiContext::new(ctx.accounts.token_program.to_account_info(), cpi_accounts);
        token::transfer(cpi_ctx, amount)?;
        ctx.accounts.ledger.paid = amount;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Payout<'info> {
    #[account(mut, has_one = authority, seeds = [b"ledger"], bump)]
    pub ledger: Account<'info, Ledger>,
    #[account(mut)]
    pub treasury: Account<'info, TokenAccount>,
    #[account(mut)]
    pub recipient: Account<'info, TokenAccount>,
    pub authority: Signer<'info>,
    pub token_program: Program<'info, Token>,
}

#[account]
pub struct Ledger {
    pub authority: Pubkey,
    pub paid: u64,
}
'''

MINT_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_spl::token::{self, Mint, MintTo, Token, TokenAccount};

#[program]
pub mod issuer {
    use super::*;

    pub fn issue(ctx: Context<Issue>, amount: u64) -> Result<()> {
        require!(amount > 0, ErrorCode::Zero);
        let cpi_accounts = MintTo {
            mint: ctx.accounts.mint.to_account_info(),
            to: ctx.accounts.destination.to_account_info(),
            authority: ctx.accounts.authority.to_account_info(),
        };
        token::mint_to(CpiContext::new(ctx.accounts.token_program.to_account_info(), cpi_accounts), amount)?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Issue<'info> {
    #[account(mut)]
    pub mint: Account<'info, Mint>,
    #[account(mut)]
    pub destination: Account<'info, TokenAccount>,
    pub authority: Signer<'info>,
    pub token_program: Program<'info, Token>,
}
'''


class TestTransferAndSupplyBounds:
    def test_unvalidated_transfer_amount(self):
        findings = detect("V010", build_model(TREASURY_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.instruction == "payout"
        assert findings[0].location.site_kind == "call"

    def test_lower_bound_does_not_validate_transfer(self):
        source = TREASURY_SOURCE.replace(
            "        let cpi_accounts = Transfer {",
            "        require!(amount > 0, ErrorCode::Zero);\n        let cpi_accounts = Transfer {",
        )
        assert len(detect("V010", build_model(source))) == 1

    def test_limit_validates_transfer(self):
        source = TREASURY_SOURCE.replace(
            "        let cpi_accounts = Transfer {",
            "        require!(amount <= MAX_PAYOUT, ErrorCode::TooLarge);\n        let cpi_accounts = Transfer {",
        )
        assert detect("V010", build_model(source)) == []

    def test_positive_mint_amount_is_still_unbounded(self):
        findings = detect("V016", build_model(MINT_SOURCE))
        assert len(findings) == 1
        assert "amount" in findings[0].message

    def test_capped_mint_is_clean(self):
        source = MINT_SOURCE.replace(
            "require!(amount > 0, ErrorCode::Zero);",
            "require!(amount > 0 && amount <= MAX_ISSUE, ErrorCode::BadAmount);",
        )
        assert detect("V016", build_model(source)) == []


class TestMissingOwner:
    def test_raw_account_without_owner(self, vault_model):
        findings = detect("V002", vault_model)
        assert len(findings) == 1
        assert findings[0].location.field == "owner"
        assert findings[0].severity == Severity.HIGH

    def test_owner_constraint_clears_it(self):
        source = VAULT_SOURCE.replace(
            "    #[account(mut)]\n    pub owner: AccountInfo<'info>,",
            "    #[account(mut, owner = system_program::ID)]\n    pub owner: AccountInfo<'info>,",
        )
        assert detect("V002", build_model(source)) == []


PROFILE_SOURCE = '''
use anchor_lang::prelude::*;

#[program]
pub mod profiles {
    use super::*;

    pub fn register(ctx: Context<Register>, name: u64) -> Result<()> {
        ctx.accounts.profile.name = name;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Register<'info> {
    #[account(init_if_needed, payer = payer, space = 8 + 16, seeds = [b"profile", payer.key().as_ref()], bump)]
    pub profile: Account<'info, Profile>,
    #[account(mut)]
    pub payer: Signer<'info>,
    pub system_program: Program<'info, System>,
}

#[account]
pub struct Profile {
    pub name: u64,
    pub initialized: bool,
}
'''


class TestReinitialization:
    def test_init_if_needed_without_state_check(self):
        findings = detect("V005", build_model(PROFILE_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.field == "profile"
        assert findings[0].location.instruction == "register"

    def test_state_check_clears_it(self):
        source = PROFILE_SOURCE.replace(
            "        ctx.accounts.profile.name = name;",
            "        require!(!ctx.accounts.profile.initialized, ErrorCode::AlreadyInitialized);\n"
            "        ctx.accounts.profile.name = name;",
        )
        assert detect("V005", build_model(source)) == []

    def test_space_without_discriminator(self):
        source = POOL_SOURCE.replace("space = 8 + 32", "space = 32")
        findings = detect("V005", build_model(source))
        assert len(findings) == 1
        assert findings[0].location.context == "CreatePool"
        assert "discriminator" in findings[0].title
        assert findings[0].confidence == 1.0

    def test_discriminator_space_is_clean(self, pool_model):
        assert detect("V005", pool_model) == []


PAYMENTS_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_spl::token_interface::{self, Mint, TokenAccount, TokenInterface, TransferChecked};

#[program]
pub mod payments {
    use super::*;

    pub fn pay(ctx: Context<Pay>, amount: u64) -> Result<()> {
        let cpi_accounts = TransferChecked {
            from: ctx.accounts.from.to_account_info(),
            mint: ctx.accounts.mint.to_account_info(),
            to: ctx.accounts.to.to_account_info(),
            authority: ctx.accounts.authority.to_account_info(),
        };
        let cpi_ctx = CpiContext::new(ctx.accounts.token_program.to_account_info(), cpi_accounts);
        token_interface::transfer_checked(cpi_ctx, amount, ctx.accounts.mint.decimals)?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Pay<'info> {
    #[account(mut)]
    pub from: InterfaceAccount<'info, TokenAccount>,
    pub mint: InterfaceAccount<'info, Mint>,
    #[account(mut)]
    pub to: InterfaceAccount<'info, TokenAccount>,
    pub authority: Signer<'info>,
    pub token_program: Interface<'info, TokenInterface>,
}
'''


class TestToken2022:
    def test_interface_transfer_ignores_fees(self):
        findings = detect("V007", build_model(PAYMENTS_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.instruction == "pay"
        assert findings[0].location.site_kind == "call"
        assert "transfer fees" in findings[0].title

    def test_fee_extension_read_is_clean(self):
        source = PAYMENTS_SOURCE.replace(
            "#[program]",
            "use spl_token_2022::extension::transfer_fee::TransferFeeConfig;\n\n#[program]",
        )
        assert detect("V007", build_model(source)) == []


class TestReentrancy:
    def test_state_written_after_cpi(self):
        findings = detect("V009", build_model(TREASURY_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.site_kind == "cpi"
        assert "ctx.accounts.ledger.paid" in findings[0].message

    def test_state_written_before_cpi_is_clean(self):
        source = TREASURY_SOURCE.replace(
            "        ctx.accounts.ledger.paid = amount;\n", "",
        ).replace(
            "        let cpi_accounts = Transfer {",
            "        ctx.accounts.ledger.paid = amount;\n        let cpi_accounts = Transfer {",
        )
        assert detect("V009", build_model(source)) == []


ALLOWANCE_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_spl::token::{self, Approve, Revoke, Token, TokenAccount};

#[program]
pub mod allowance {
    use super::*;

    pub fn delegate(ctx: Context<Delegate>, amount: u64) -> Result<()> {
        let cpi_ctx = CpiContext::new(
            ctx.accounts.token_program.to_account_info(),
            Approve {
                to: ctx.accounts.source.to_account_info(),
                delegate: ctx.accounts.delegate.to_account_info(),
                authority: ctx.accounts.owner.to_account_info(),
            },
        );
        token::approve(cpi_ctx, amount)?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Delegate<'info> {
    #[account(mut)]
    pub source: Account<'info, TokenAccount>,
    /// CHECK: any delegate the owner picks
    pub delegate: AccountInfo<'info>,
    pub owner: Signer<'info>,
    pub token_program: Program<'info, Token>,
}
'''

REVOKE_INSTRUCTION = '''
    pub fn undelegate(ctx: Context<Delegate>) -> Result<()> {
        let cpi_ctx = CpiContext::new(
            ctx.accounts.token_program.to_account_info(),
            Revoke {
                source: ctx.accounts.source.to_account_info(),
                authority: ctx.accounts.owner.to_account_info(),
            },
        );
        token::revoke(cpi_ctx)?;
        Ok(())
    }
}

#[derive(Accounts)]'''


class TestWeakDelegation:
    def test_approve_without_revoke(self):
        findings = detect("V011", build_model(ALLOWANCE_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.instruction == "delegate"
        assert "token::approve" in findings[0].message

    def test_revoke_instruction_clears_it(self):
        source = ALLOWANCE_SOURCE.replace("}\n\n#[derive(Accounts)]", REVOKE_INSTRUCTION, 1)
        model = build_model(source)
        assert model.programs[0].get_instruction("undelegate") is not None
        assert detect("V011", model) == []


ACCOUNT_FACTORY_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_lang::solana_program::program::invoke;
use anchor_lang::solana_program::system_instruction;

#[program]
pub mod factory {
    use super::*;

    pub fn open(ctx: Context<Open>, space: u64) -> Result<()> {
        let ix = system_instruction::create_account(
            ctx.accounts.payer.key,
            ctx.accounts.account.key,
            1_000_000,
            space,
            ctx.program_id,
        );
        invoke(&ix, &[ctx.accounts.payer.to_account_info(), ctx.accounts.account.to_account_info()])?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Open<'info> {
    #[account(mut)]
    pub payer: Signer<'info>,
    #[account(mut)]
    pub account: Signer<'info>,
    pub system_program: Program<'info, System>,
}
'''


class TestRentExemption:
    def test_fixed_lamports_ignore_rent(self):
        findings = detect("V012", build_model(ACCOUNT_FACTORY_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.instruction == "open"
        assert "create_account" in findings[0].title

    def test_rent_minimum_is_clean(self):
        source = ACCOUNT_FACTORY_SOURCE.replace(
            "        let ix = system_instruction::create_account(",
            "        let lamports = Rent::get()?.minimum_balance(space as usize);\n"
            "        let ix = system_instruction::create_account(",
        ).replace("            1_000_000,", "            lamports,")
        assert detect("V012", build_model(source)) == []


CLOSE_POOL_CONTEXT = '''#[derive(Accounts)]
pub struct ClosePool<'info> {
    #[account(mut, close = payer)]
    pub pool: Account<'info, Pool>,
    #[account(mut)]
    pub payer: Signer<'info>,
}

#[account]
pub struct Pool {'''


class TestMissingClose:
    def test_created_type_is_never_closed(self, pool_model):
        findings = detect("V013", pool_model)
        assert len(findings) == 1
        assert findings[0].location.context == "CreatePool"
        assert "`Pool` accounts are never closed" == findings[0].title

    def test_close_constraint_clears_it(self):
        source = POOL_SOURCE.replace("#[account]\npub struct Pool {", CLOSE_POOL_CONTEXT)
        assert detect("V013", build_model(source)) == []


LENDING_SOURCE = '''
use anchor_lang::prelude::*;
use pyth_sdk_solana::load_price_feed_from_account_info;

#[program]
pub mod lending {
    use super::*;

    pub fn borrow(ctx: Context<Borrow>) -> Result<()> {
        let feed = load_price_feed_from_account_info(&ctx.accounts.price_feed)?;
        let price = feed.get_price_unchecked();
        ctx.accounts.position.collateral_price = price.price;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Borrow<'info> {
    #[account(mut, has_one = owner)]
    pub position: Account<'info, Position>,
    /// CHECK: Pyth price account
    pub price_feed: AccountInfo<'info>,
    pub owner: Signer<'info>,
}

#[account]
pub struct Position {
    pub owner: Pubkey,
    pub collateral_price: i64,
}
'''


class TestOracleDependency:
    def test_unchecked_price(self):
        findings = detect("V014", build_model(LENDING_SOURCE))
        assert len(findings) == 2
        assert {f.location.instruction for f in findings} == {"borrow"}

    def test_staleness_check_clears_it(self):
        source = LENDING_SOURCE.replace(
            "        ctx.accounts.position.collateral_price = price.price;",
            "        require!(price.publish_time >= Clock::get()?.unix_timestamp - MAX_AGE, ErrorCode::StalePrice);\n"
            "        ctx.accounts.position.collateral_price = price.price;",
        )
        assert detect("V014", build_model(source)) == []


ESCROW_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_lang::solana_program::program::invoke_signed;
use anchor_lang::solana_program::system_instruction;

#[program]
pub mod escrow {
    use super::*;

    pub fn release(ctx: Context<Release>, amount: u64) -> Result<()> {
        let ix = system_instruction::transfer(ctx.accounts.escrow.key, ctx.accounts.recipient.key, amount);
        invoke_signed(
            &ix,
            &[ctx.accounts.escrow.to_account_info(), ctx.accounts.recipient.to_account_info()],
            &[&[b"escrow", &[ctx.accounts.escrow_state.bump]]],
        )?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Release<'info> {
    #[account(mut, seeds = [b"escrow_state"], bump = escrow_state.bump)]
    pub escrow_state: Account<'info, EscrowState>,
    /// CHECK: PDA holding the lamports
    #[account(mut, seeds = [b"escrow"], bump)]
    pub escrow: AccountInfo<'info>,
    /// CHECK: receives the lamports
    #[account(mut)]
    pub recipient: AccountInfo<'info>,
    pub authority: Signer<'info>,
}

#[account]
pub struct EscrowState {
    pub bump: u8,
    pub nonce: u64,
}
'''


class TestSignedReplay:
    def test_invoke_signed_without_nonce(self):
        findings = detect("V015", build_model(ESCROW_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.site_kind == "cpi"
        assert findings[0].severity == Severity.CRITICAL

    def test_nonce_increment_clears_it(self):
        source = ESCROW_SOURCE.replace(
            "        let ix = system_instruction::transfer(",
            "        ctx.accounts.escrow_state.nonce += 1;\n        let ix = system_instruction::transfer(",
        )
        assert detect("V015", build_model(source)) == []


UPGRADE_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_lang::solana_program::bpf_loader_upgradeable;
use anchor_lang::solana_program::program::invoke;

#[program]
pub mod governor {
    use super::*;

    pub fn upgrade(ctx: Context<Upgrade>) -> Result<()> {
        let ix = bpf_loader_upgradeable::upgrade(
            ctx.accounts.program.key,
            ctx.accounts.buffer.key,
            ctx.accounts.authority.key,
            ctx.accounts.spill.key,
        );
        invoke(&ix, &[ctx.accounts.program.to_account_info(), ctx.accounts.buffer.to_account_info()])?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Upgrade<'info> {
    pub config: Account<'info, Config>,
    /// CHECK: the program being upgraded
    #[account(mut)]
    pub program: AccountInfo<'info>,
    /// CHECK: buffer holding the new code
    #[account(mut)]
    pub buffer: AccountInfo<'info>,
    /// CHECK: receives the buffer lamports
    #[account(mut)]
    pub spill: AccountInfo<'info>,
    pub authority: Signer<'info>,
}

#[account]
pub struct Config {
    pub version: u32,
}
'''


class TestUpgradeability:
    def test_upgrade_without_version_check(self):
        findings = detect("V017", build_model(UPGRADE_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.instruction == "upgrade"
        assert "bpf_loader_upgradeable::upgrade" in findings[0].message

    def test_version_check_clears_it(self):
        source = UPGRADE_SOURCE.replace(
            "        let ix = bpf_loader_upgradeable::upgrade(",
            "        require!(ctx.accounts.config.version < TARGET_VERSION, ErrorCode::Outdated);\n"
            "        let ix = bpf_loader_upgradeable::upgrade(",
        )
        assert detect("V017", build_model(source)) == []


class TestErrorSuppression:
    def test_raw_invoke_error_is_propagated(self, relay_model):
        findings = detect("V018", relay_model)
        assert len(findings) == 1
        assert findings[0].severity == Severity.LOW
        assert findings[0].location.instruction == "relay"

    def test_mapped_error_is_clean(self):
        source = RELAY_SOURCE.replace(
            "invoke(&ix, &[ctx.accounts.authority.to_account_info()])?;",
            "invoke(&ix, &[ctx.accounts.authority.to_account_info()]).map_err(|_| ErrorCode::RelayFailed)?;",
        )
        assert detect("V018", build_model(source)) == []


SETTINGS_SOURCE = '''
use anchor_lang::prelude::*;

#[program]
pub mod settings {
    use super::*;

    pub fn set_fee(ctx: Context<SetFee>, fee: u64) -> Result<()> {
        ctx.accounts.config.fee = fee;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct SetFee<'info> {
    #[account(mut)]
    pub config: Account<'info, Config>,
    pub admin: Signer<'info>,
}

#[account]
pub struct Config {
    pub admin: Pubkey,
    pub fee: u64,
}
'''


class TestUnverifiedSeeds:
    def test_state_account_without_seeds(self):
        findings = detect("V021", build_model(SETTINGS_SOURCE))
        assert len(findings) == 1
        assert findings[0].location.field == "config"
        assert findings[0].location.context == "SetFee"

    def test_seeds_constraint_clears_it(self):
        source = SETTINGS_SOURCE.replace("#[account(mut)]\n    pub config", '#[account(mut, seeds = [b"config"], bump)]\n    pub config')
        assert detect("V021", build_model(source)) == []


class TestLamportsRounding:
    def test_raw_lamport_arithmetic(self, vault_model):
        findings = detect("V022", vault_model)
        assert len(findings) == 2
        assert all("lamports" in f.snippet for f in findings)

    def test_checked_lamport_arithmetic_is_clean(self):
        source = VAULT_SOURCE.replace(
            "        **ctx.accounts.vault.to_account_info().try_borrow_mut_lamports()? -= amount;\n"
            "        **ctx.accounts.owner.try_borrow_mut_lamports()? += amount;",
            "        let vault = ctx.accounts.vault.to_account_info();\n"
            "        let owner = ctx.accounts.owner.to_account_info();\n"
            "        **vault.try_borrow_mut_lamports()? = vault.lamports().checked_sub(amount).ok_or(ErrorCode::Overflow)?;\n"
            "        **owner.try_borrow_mut_lamports()? = owner.lamports().checked_add(amount).ok_or(ErrorCode::Overflow)?;",
        )
        assert detect("V022", build_model(source)) == []
